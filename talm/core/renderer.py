"""Jinja2 template renderer.

Renders a chart's template files in argument order. Every top-level macro
defined by a partial (``_*.tpl`` files under ``templates/`` and
``charts/*/templates/``) or by one of the requested templates is callable
from every template of the same render, by name or through
``include(name, ...)``.

Rendering is all-or-nothing: every file is compiled before anything
executes, and no fragment is returned if any file fails.
"""
import traceback
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Sequence, Union

import jinja2
from jinja2 import ChainableUndefined, Environment, FileSystemLoader, nodes
from jinja2.runtime import Macro

from talm.core.errors import TemplateExecutionError, TemplateSyntaxError, TalmError
from talm.core.functions import FunctionLibrary
from talm.core.logger import get_logger

logger = get_logger(__name__)

PARTIAL_GLOBS = ("templates/**/_*.tpl", "charts/*/templates/**/_*.tpl")

# Top-level nodes kept when extracting the definitions of a requested template
DEFINITION_NODES = (nodes.Macro, nodes.Import, nodes.FromImport)


@dataclass
class RenderedFragment:
    """Output of one template file."""
    template: str
    text: str


class TemplateRenderer:
    """Renders templates of one chart against a fixed context.

    Args:
        chart_root: Chart directory; template names are relative to it
        library: Function library bound to this invocation
        context: Template variables (Values, Chart, TalosVersion, ...)
    """

    def __init__(self, chart_root: Union[str, Path], library: FunctionLibrary, context: Dict[str, Any]):
        self.chart_root = Path(chart_root)
        self.library = library
        self.context = dict(context)
        self.definitions: Dict[str, Macro] = {}
        # compiled template filename -> chart-relative name
        self._filenames: Dict[str, str] = {}

        self.env = Environment(
            loader=FileSystemLoader(str(self.chart_root)),
            undefined=ChainableUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            extensions=["jinja2.ext.loopcontrols", "jinja2.ext.do"],
        )
        self.env.filters.update(library.filters())
        self.env.globals.update(library.globals())
        self.env.globals["include"] = self.include

    def partials(self) -> List[str]:
        """Partial template names, in sorted path order."""
        names = set()
        for pattern in PARTIAL_GLOBS:
            for path in self.chart_root.glob(pattern):
                if path.is_file():
                    names.add(path.relative_to(self.chart_root).as_posix())
        return sorted(names)

    def include(self, name: str, *args, **kwargs) -> str:
        """Call a shared definition by name and return its output."""
        macro = self.definitions.get(name)
        if macro is None:
            raise TemplateExecutionError(f"include: no definition named {name!r}")
        return str(macro(*args, **kwargs))

    def render(self, template_files: Sequence[str]) -> List[RenderedFragment]:
        """Render *template_files* (chart-relative names) in order.

        Raises:
            TemplateSyntaxError: A partial or requested template cannot be parsed or found
            TemplateExecutionError: A template fails while executing
        """
        partials = self.partials()
        names = [self._normalize(name) for name in template_files]

        # Compile everything before executing anything
        compiled = {name: self._compile(name) for name in [*partials, *names]}
        self._filenames = {t.filename: name for name, t in compiled.items() if t.filename}

        self.definitions = {}
        for name in partials:
            module = self._execute(name, lambda: compiled[name].make_module(vars=self.context))
            self._register(name, module)
        # Requested templates only contribute their definitions here; their
        # bodies run once, in phase 3
        for name in names:
            if name in partials:
                continue
            module = self._execute(name, lambda: self._definitions_module(name))
            if module is not None:
                self._register(name, module)
        logger.debug(f"Loaded {len(self.definitions)} definitions from {len(partials)} partials and {len(names)} templates")

        fragments = []
        for name in names:
            template_vars = {
                **self.context,
                **self.definitions,
                "Template": {"Name": name, "BasePath": str(PurePosixPath(name).parent)},
            }
            text = self._execute(name, lambda: compiled[name].render(**template_vars))
            fragments.append(RenderedFragment(template=name, text=text))
            logger.debug(f"Rendered {name} ({len(text)} bytes)")

        return fragments

    def _register(self, name: str, module) -> None:
        for attr, value in vars(module).items():
            if isinstance(value, Macro):
                if attr in self.definitions:
                    logger.debug(f"Definition {attr!r} redefined by {name}")
                self.definitions[attr] = value

    def _definitions_module(self, name: str):
        """Module of *name* holding only its top-level macros and imports."""
        source, filename, _ = self.env.loader.get_source(self.env, name)
        body = [node for node in self.env.parse(source, name, filename).body
                if isinstance(node, DEFINITION_NODES)]
        if not any(isinstance(node, nodes.Macro) for node in body):
            return None

        tree = nodes.Template(body, lineno=1).set_environment(self.env)
        code = self.env.compile(tree, name, filename)
        template = self.env.template_class.from_code(self.env, code, self.env.make_globals(None))
        return template.make_module(vars=self.context)

    def _normalize(self, name: str) -> str:
        path = PurePosixPath(str(name).replace("\\", "/"))
        if path.is_absolute() or ".." in path.parts:
            raise TemplateSyntaxError("template path must be relative to the chart root", template=str(name))
        return path.as_posix()

    def _compile(self, name: str) -> jinja2.Template:
        try:
            return self.env.get_template(name)
        except jinja2.TemplateNotFound as e:
            raise TemplateSyntaxError("template not found", template=name) from e
        except jinja2.TemplateSyntaxError as e:
            raise TemplateSyntaxError(e.message or str(e), template=e.name or name, lineno=e.lineno) from e

    def _execute(self, name: str, action):
        try:
            return action()
        except TemplateExecutionError as e:
            if e.template is None:
                e.template, e.lineno = self._position(e, name)
            raise
        except TalmError:
            raise
        except jinja2.TemplateSyntaxError as e:
            raise TemplateSyntaxError(e.message or str(e), template=e.name or name, lineno=e.lineno) from e
        except Exception as e:
            template, lineno = self._position(e, name)
            raise TemplateExecutionError(f"{type(e).__name__}: {e}", template=template, lineno=lineno) from e

    def _position(self, exc: BaseException, fallback: str):
        """Innermost template frame of *exc*'s traceback as (name, line)."""
        for frame in reversed(traceback.extract_tb(exc.__traceback__)):
            if frame.filename in self._filenames:
                return self._filenames[frame.filename], frame.lineno
        return fallback, None
