"""DocxTemplate: core render engine for docximg.

Provides the main API for loading a .docx template, rendering it with a
Jinja2 context dict (plus any registered extension modules), and saving
the result.
"""

import fnmatch
import re
from collections.abc import Mapping
from xml.sax.saxutils import escape

from jinja2 import Environment, BaseLoader, TemplateSyntaxError, Undefined, meta, pass_context
from lxml import etree
from markupsafe import Markup

from docximg.exceptions import InvalidTemplateError, PackageWriteError, TemplateRenderError
from docximg.image_module import HostServices
from docximg.manifest import serialize_xml
from docximg.package import OpcPackage
from docximg.xml_utils import EXPRESSION_TAG, preprocess_xml, split_enclosing_run

MAIN_PART = "word/document.xml"

# Parts rendered after the main document, in package order
_EXTRA_TEMPLATED_PATTERNS = ("word/header*.xml", "word/footer*.xml")

# Regex for Jinja tags used to detect parts that need rendering
_JINJA_TAG_RE = re.compile(r"(\{\{.*?\}\}|\{%.*?%\}|\{#.*?#\})", re.DOTALL)

# Name of the context callable that hands claimed tags back to their module
_EXTENSION_CALL = "_docximg_extension"

# Placeholder names whose first segment can be passed to the call as a variable
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*$")
_JINJA_KEYWORDS = frozenset(
    {"and", "or", "not", "in", "is", "if", "else", "true", "false", "none", "True", "False", "None"}
)


def _escape_value(value):
    """XML-escape every string reachable through mappings, lists and tuples.

    Bytes and other objects pass through untouched, so image payloads reach
    the modules as given.
    """
    if isinstance(value, str):
        return escape(value)
    if isinstance(value, Mapping):
        return {key: _escape_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_escape_value(item) for item in value]
    if isinstance(value, tuple):
        items = [_escape_value(item) for item in value]
        # namedtuples take their fields positionally
        return type(value)(*items) if hasattr(value, "_fields") else tuple(items)
    return value


class RenderScope:
    """Variables visible at a claimed placeholder.

    Values passed explicitly to the extension call (loop variables, for
    instance) win over the template context.
    """

    def __init__(self, context, local_vars: dict):
        self.environment = context.environment
        self._context = context
        self._locals = local_vars

    def resolve_or_missing(self, key: str):
        value = self._locals.get(key)
        if key in self._locals and not isinstance(value, Undefined):
            return value
        return self._context.resolve_or_missing(key)


class DocxTemplate:
    """Load a Word template, render with Jinja2, and save.

    Usage::

        tpl = DocxTemplate("template.docx", modules=[ImageModule()])
        tpl.render({"name": "World", "chart": png_bytes})
        tpl.save("output.docx")
    """

    def __init__(self, template_path, modules=None):
        self._template_path = template_path
        self._package = OpcPackage.open(template_path)
        if not self._package.has_part(MAIN_PART):
            raise InvalidTemplateError(f"Cannot load template: {MAIN_PART} is missing")
        self._modules = list(modules or [])

    @property
    def package(self) -> OpcPackage:
        """Access the underlying package."""
        return self._package

    @property
    def modules(self) -> list:
        return list(self._modules)

    def attach_module(self, module) -> None:
        """Register an extension module (see :class:`docximg.ImageModule`)."""
        self._modules.append(module)

    @property
    def templated_parts(self) -> list[str]:
        """Names of the parts rendered by :meth:`render`, main document first."""
        extra = [
            name
            for name in self._package.part_names
            if any(fnmatch.fnmatch(name, pattern) for pattern in _EXTRA_TEMPLATED_PATTERNS)
        ]
        return [MAIN_PART] + extra

    def render(self, context: dict | None = None, jinja_env: Environment | None = None) -> None:
        """Render every templated part with the given context dict.

        Args:
            context: Template variables dict. Plain strings are XML-escaped;
                     other values (image bytes included) are passed as-is.
            jinja_env: Optional custom Jinja2 Environment. If not provided,
                       a default environment is created.

        Raises:
            TemplateRenderError: the template is not valid Jinja2, or the
                rendered XML is malformed.
            PackageWriteError: an extension could not write to the package.
        """
        if context is None:
            context = {}

        if jinja_env is None:
            jinja_env = Environment(loader=BaseLoader(), autoescape=False)

        render_context = {key: _escape_value(value) for key, value in context.items()}

        for part_name in self.templated_parts:
            self._render_part(part_name, render_context, jinja_env)

    def _render_part(self, part_name: str, context: dict, jinja_env: Environment) -> None:
        """Render a single part's XML through the Jinja2 pipeline."""
        root = self._parse_part(part_name)
        xml_str = etree.tostring(root, encoding="unicode")

        # Preprocess: fix fragmented delimiters, strip internal tags, etc.
        xml_str = preprocess_xml(xml_str)

        if not _JINJA_TAG_RE.search(xml_str):
            return  # Nothing to render in this part

        services = HostServices(self._package, part_name)
        for module in self._modules:
            module.configure(services)

        xml_str, claimed = self._claim_tags(xml_str)

        @pass_context
        def render_extension(jinja_context, index, *scope_values):
            module, placeholder, head = claimed[index]
            local_vars = {head: scope_values[0]} if scope_values else {}
            scope = RenderScope(jinja_context, local_vars)
            return Markup(module.render(placeholder, scope))

        try:
            template = jinja_env.from_string(xml_str)
            rendered_xml = template.render({**context, _EXTENSION_CALL: render_extension})
        except PackageWriteError:
            raise
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(
                f"Jinja2 syntax error in {part_name}: {exc}"
            ) from exc
        except Exception as exc:
            raise TemplateRenderError(
                f"Rendering failed in {part_name}: {exc}"
            ) from exc

        try:
            new_root = etree.fromstring(rendered_xml.encode("utf-8"))
        except etree.XMLSyntaxError as exc:
            raise TemplateRenderError(
                f"Rendered XML of {part_name} is invalid: {exc}"
            ) from exc

        self._package.write_part(part_name, serialize_xml(new_root))

    def _recognize(self, token: str):
        for module in self._modules:
            placeholder = module.recognize(token)
            if placeholder is not None:
                return module, placeholder
        return None, None

    def _claim_tags(self, xml: str) -> tuple[str, list]:
        """Hand ``{{ ... }}`` tags to the registered modules.

        Each tag a module recognises is cut out of its <w:r> and replaced with a
        call to the extension callable; text sharing the run is kept on either
        side. The first segment of the placeholder
        name is passed along as a Jinja2 variable so loop variables resolve.
        Returns the new XML and the ``(module, placeholder, head)`` triples
        indexed by those calls.
        """
        claimed: list = []
        pos = 0
        while self._modules:
            match = EXPRESSION_TAG.search(xml, pos)
            if not match:
                break
            owner, placeholder = self._recognize(match.group(1))
            if owner is None:
                pos = match.end()
                continue

            head = placeholder.name.split(".")[0]
            if _IDENTIFIER_RE.match(head) and head not in _JINJA_KEYWORDS:
                call = "{{ %s(%d, %s) }}" % (_EXTENSION_CALL, len(claimed), head)
            else:
                head = None
                call = "{{ %s(%d) }}" % (_EXTENSION_CALL, len(claimed))
            claimed.append((owner, placeholder, head))
            xml, pos = split_enclosing_run(xml, match.start(), match.end(), call)
        return xml, claimed

    def _parse_part(self, part_name: str):
        try:
            return etree.fromstring(self._package.read_part(part_name))
        except etree.XMLSyntaxError as exc:
            raise InvalidTemplateError(f"Cannot parse {part_name}: {exc}") from exc

    def save(self, output_path) -> None:
        """Save the rendered document to a path or binary file-like object."""
        self._package.save(output_path)

    def get_image_placeholders(self) -> list[str]:
        """Names bound to placeholders claimed by the registered modules."""
        names: set[str] = set()
        for part_name in self.templated_parts:
            xml_str = preprocess_xml(etree.tostring(self._parse_part(part_name), encoding="unicode"))
            for match in EXPRESSION_TAG.finditer(xml_str):
                owner, placeholder = self._recognize(match.group(1))
                if owner is not None:
                    names.add(placeholder.name)
        return sorted(names)

    def get_undeclared_template_variables(
        self, jinja_env: Environment | None = None
    ) -> set[str]:
        """Find all undeclared variables across all templated parts.

        Image placeholders count by the first segment of their name.
        """
        if jinja_env is None:
            jinja_env = Environment(loader=BaseLoader(), autoescape=False)

        all_vars: set[str] = set()

        for part_name in self.templated_parts:
            xml_str = preprocess_xml(etree.tostring(self._parse_part(part_name), encoding="unicode"))
            xml_str, claimed = self._claim_tags(xml_str)
            # Identifier heads are seen by Jinja2 itself in the extension calls
            all_vars.update(p.name.split(".")[0] for _, p, head in claimed if head is None)

            try:
                ast = jinja_env.parse(xml_str)
                variables = meta.find_undeclared_variables(ast)
                all_vars.update(variables)
            except TemplateSyntaxError:
                pass  # Skip parts with syntax errors

        all_vars.discard(_EXTENSION_CALL)
        return all_vars
