"""XML preprocessing utilities for docximg.

Word splits the text of a paragraph across many <w:r> run elements, often in
the middle of Jinja2 tags like {{ and {% %}. These functions reconstitute the
fragments before Jinja2 sees the part XML.
"""

import re
from html import unescape

# Content between </w:t> and the next <w:t> (run boundaries inside Jinja tags)
_RUN_BOUNDARY = re.compile(r"</w:t>.*?<w:t(?:\s[^>]*)?>", re.DOTALL)

_TEXT_OPEN = re.compile(r"<w:t(?:\s[^>]*)?>")
_TEXT_ELEMENT = re.compile(r"<w:t(\s[^>]*)?>(.*?)</w:t>", re.DOTALL)
_RUN_PROPERTIES = re.compile(r"<w:rPr\b(?:[^>]*/>|.*?</w:rPr>)", re.DOTALL)

# Regex matching Jinja2 tags: {{ ... }}, {% ... %}, {# ... #}
_JINJA_TAG = re.compile(r"(\{\{.*?\}\}|\{%.*?%\}|\{#.*?#\})", re.DOTALL)

# Expression tags only; group 1 is the text between the braces
EXPRESSION_TAG = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)

# A delimiter character followed by markup; group 2 is the next character
_SPLIT_DELIMITER = re.compile(r"([{}%#])(?:<[^>]*>)+(?=([{}%#]))")
_DELIMITERS = frozenset({"{{", "}}", "{%", "%}", "{#", "#}"})

_SMART_QUOTES = str.maketrans({"\u201c": '"', "\u201d": '"', "\u2018": "'", "\u2019": "'"})

# Special prefixes and the WordprocessingML element they operate on
_SPECIAL_PREFIXES = {
    "p": "w:p",
    "r": "w:r",
    "tr": "w:tr",
    "tc": "w:tc",
}


def clean_jinja_delimiters(xml: str) -> str:
    """Rejoin Jinja2 delimiters that Word split across XML runs.

    ``{</w:t></w:r><w:r><w:t>{`` becomes ``{{``. Markup between two
    characters that do not form a delimiter is left where it is.
    """

    def _join(match: re.Match) -> str:
        if match.group(1) + match.group(2) in _DELIMITERS:
            return match.group(1)
        return match.group(0)

    return _SPLIT_DELIMITER.sub(_join, xml)


def strip_internal_tags(xml: str) -> str:
    """Collapse a Jinja2 tag spread over several runs into the first run's <w:t>."""
    return _JINJA_TAG.sub(lambda match: _RUN_BOUNDARY.sub("", match.group(0)), xml)


def ensure_space_preservation(xml: str) -> str:
    """Mark <w:t> elements holding Jinja2 tags with xml:space="preserve".

    Word drops the spaces around rendered values otherwise. Elements that
    already declare xml:space are left as they are.
    """

    def _preserve(match: re.Match) -> str:
        attrs = match.group(1) or ""
        text = match.group(2)
        if "xml:space=" in attrs or not _JINJA_TAG.search(text):
            return match.group(0)
        return f'<w:t xml:space="preserve"{attrs}>{text}</w:t>'

    return _TEXT_ELEMENT.sub(_preserve, xml)

def elevate_special_tags(xml: str) -> str:
    """Replace enclosing XML elements for special-prefix Jinja tags.

    ``{%p if show %}`` operates on the whole paragraph: the <w:p> containing
    the tag is replaced by the bare ``{% if show %}``. Supported prefixes:
    p (paragraph), r (run), tr (table row), tc (table cell).
    """
    for prefix, element_tag in _SPECIAL_PREFIXES.items():
        xml = _elevate_prefix(xml, prefix, element_tag)
    return xml


def _elevate_prefix(xml: str, prefix: str, element_tag: str) -> str:
    """Elevate a single prefix's tags to their enclosing XML element level."""
    tag_pattern = re.compile(
        r"\{([%{])\s*" + re.escape(prefix) + r"\s+(.+?)\s*[%}]\}", re.DOTALL
    )

    pos = 0
    while True:
        tag_match = tag_pattern.search(xml, pos)
        if not tag_match:
            break

        inner = tag_match.group(2)
        if tag_match.group(1) == "%":
            bare_tag = "{% " + inner + " %}"
        else:
            bare_tag = "{{ " + inner + " }}"

        xml, pos = replace_enclosing(xml, tag_match.start(), tag_match.end(), element_tag, bare_tag)

    return xml


def replace_enclosing(xml: str, start: int, end: int, element_tag: str, replacement: str) -> tuple[str, int]:
    """Replace the innermost ``element_tag`` element around ``xml[start:end]``.

    If no enclosing element is found only ``xml[start:end]`` is replaced.
    Returns the new XML and the index just past the replacement.
    """
    span = _enclosing_span(xml, start, end, element_tag)
    if span is None:
        span = (start, end)

    xml = xml[: span[0]] + replacement + xml[span[1]:]
    return xml, span[0] + len(replacement)


def split_enclosing_run(xml: str, start: int, end: int, replacement: str) -> tuple[str, int]:
    """Put ``replacement`` between the halves of the <w:r> holding ``xml[start:end]``.

    Text before and after the tag stays in runs carrying the original
    <w:rPr>; a half with nothing in it is dropped. Returns the new XML and
    the index just past the replacement.
    """
    span = _enclosing_span(xml, start, end, "w:r")
    if span is None:
        return xml[:start] + replacement + xml[end:], start + len(replacement)
    run_start, run_end = span
    head = xml[run_start:start]
    tail = xml[end:run_end]

    text_open = None
    for m in _TEXT_OPEN.finditer(head):
        text_open = m
    text_close = tail.find("</w:t>")
    if text_open is None or text_close < 0:
        return replace_enclosing(xml, start, end, "w:r", replacement)

    props = _RUN_PROPERTIES.search(head)
    props = props.group(0) if props else ""
    run_open_end = head.index(">") + 1
    before_is_empty = (
        not head[text_open.end():]
        and not head[run_open_end:text_open.start()].replace(props, "", 1).strip()
    )
    after_is_empty = (
        not tail[:text_close]
        and not tail[text_close + len("</w:t>"): -len("</w:r>")].strip()
    )

    before = "" if before_is_empty else head + "</w:t></w:r>"
    after = "" if after_is_empty else "<w:r>" + props + '<w:t xml:space="preserve">' + tail

    xml = xml[:run_start] + before + replacement + after + xml[run_end:]
    return xml, run_start + len(before) + len(replacement)


def _element_pattern(element_tag: str) -> re.Pattern:
    # group 1 is "/" for a close tag, group 2 is "/" for an empty element
    return re.compile(rf"<(/?){re.escape(element_tag)}(?=[\s/>])[^>]*?(/?)>")


def _enclosing_span(xml: str, start: int, end: int, element_tag: str) -> tuple[int, int] | None:
    """Find ``(open_start, close_end)`` of the innermost element containing the range."""
    pattern = _element_pattern(element_tag)

    open_positions = []
    for m in pattern.finditer(xml, 0, start):
        if m.group(2):
            continue
        if m.group(1):
            if open_positions:
                open_positions.pop()
        else:
            open_positions.append(m.start())
    if not open_positions:
        return None

    depth = 0
    for m in pattern.finditer(xml, end):
        if m.group(2):
            continue
        if not m.group(1):
            depth += 1
        elif depth:
            depth -= 1
        else:
            return open_positions[-1], m.end()
    return None


def clean_entities_in_tags(xml: str) -> str:
    """Undo Word's entity escaping and smart quotes inside Jinja2 tags only.

    ``{{ x &lt; 10 }}`` becomes ``{{ x < 10 }}``; text outside tags is untouched.
    """
    return _JINJA_TAG.sub(lambda match: unescape(match.group(0)).translate(_SMART_QUOTES), xml)


def preprocess_xml(xml: str) -> str:
    """Run the full preprocessing pipeline on a Word part's XML string.

    Steps (in order):
    1. Clean delimiters: rejoin split {{ }}, {% %}, {# #}
    2. Strip internal tags: remove run boundaries inside Jinja expressions
    3. Ensure space preservation on <w:t> elements holding tags
    4. Elevate special tags: replace enclosing elements for p/r/tr/tc tags
    5. Clean entities: unescape XML entities inside Jinja expressions
    """
    xml = clean_jinja_delimiters(xml)
    xml = strip_internal_tags(xml)
    xml = ensure_space_preservation(xml)
    xml = elevate_special_tags(xml)
    xml = clean_entities_in_tags(xml)
    return xml
