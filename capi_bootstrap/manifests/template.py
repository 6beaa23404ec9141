"""Two-phase manifest templating.

Manifests are rendered twice: once locally, with ``[[[ ]]]`` placeholders
filled from the bootstrap values, and again on the bootstrap node by
cloud-init, which resolves ``{{ ds.meta_data.* }}`` style placeholders from
instance metadata. Escaping rewrites cloud-init placeholders into a jinja
string literal (``{{ '{{ ds.meta_data.region }}' }}``) so that the cloud-init
pass emits them verbatim into the files it writes.
"""

import logging
import os
import re
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from jinja2 import (
    Environment,
    StrictUndefined,
    TemplateSyntaxError,
    UndefinedError,
)
from jinja2 import TemplateError as JinjaTemplateError

from capi_bootstrap.exceptions import TemplateError

logger = logging.getLogger(__name__)

PLACEHOLDER_OPEN = "{{"
PLACEHOLDER_CLOSE = "}}"

# [[[ .ClusterName ]]] -> [[[ ClusterName ]]]
_LEADING_DOT = re.compile(r"(\[\[\[-?\s*)\.(?=[A-Za-z_])")

_environment = Environment(
    variable_start_string="[[[",
    variable_end_string="]]]",
    block_start_string="[[%",
    block_end_string="%]]",
    comment_start_string="[[#",
    comment_end_string="#]]",
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)


class Span(str, Enum):
    """Token kinds produced by the placeholder scanner."""
    LITERAL = "literal"
    PLACEHOLDER = "placeholder"
    ESCAPED = "escaped"


def _match_escaped(text: str, start: int) -> Optional[Tuple[int, str]]:
    """Match an escaped placeholder at ``start``, returning (end, inner placeholder)."""
    for quote in ("'", '"'):
        prefix = PLACEHOLDER_OPEN + " " + quote + PLACEHOLDER_OPEN
        if not text.startswith(prefix, start):
            continue
        suffix = PLACEHOLDER_CLOSE + quote + " " + PLACEHOLDER_CLOSE
        close = text.find(suffix, start + len(prefix))
        if close < 0:
            continue
        inner = text[start + 3:close + len(PLACEHOLDER_CLOSE)]
        return close + len(suffix), inner
    return None


def scan(text: str) -> Iterator[Tuple[Span, str, str]]:
    """Split text into literal, placeholder and escaped-placeholder spans.

    Yields:
        (kind, raw text of the span, inner placeholder). For literal and
        placeholder spans the inner text equals the raw text.
    """
    length = len(text)
    literal_start = 0
    pos = 0
    while pos < length:
        start = text.find(PLACEHOLDER_OPEN, pos)
        if start < 0:
            break

        escaped = _match_escaped(text, start)
        if escaped:
            end, inner = escaped
            kind = Span.ESCAPED
        else:
            close = text.find(PLACEHOLDER_CLOSE, start + len(PLACEHOLDER_OPEN))
            if close < 0:
                break
            end = close + len(PLACEHOLDER_CLOSE)
            inner = text[start:end]
            kind = Span.PLACEHOLDER

        if start > literal_start:
            literal = text[literal_start:start]
            yield Span.LITERAL, literal, literal
        yield kind, text[start:end], inner
        pos = literal_start = end

    if literal_start < length:
        literal = text[literal_start:]
        yield Span.LITERAL, literal, literal


# characters after which a quote opens a YAML flow scalar
_SCALAR_START = " \t\n[{,:-"


def _quote_state(literal: str, state: str, prev: str) -> Tuple[str, str]:
    """Advance the YAML quoting state over literal text.

    The state is the quote character of the flow scalar open at the end of
    ``literal`` ("" when none). Quoting never spans lines here.
    """
    i = 0
    while i < len(literal):
        c = literal[i]
        if c == "\n":
            state = ""
        elif not state:
            if c in "'\"" and prev in _SCALAR_START:
                state = c
        elif state == "'":
            if c == "'":
                if literal.startswith("'", i + 1):
                    i += 1
                else:
                    state = ""
        elif c == "\\" and i + 1 < len(literal):
            i += 1
        elif c == '"':
            state = ""
        prev = literal[i]
        i += 1
    return state, prev


def _quote_for(placeholder: str, state: str) -> str:
    # a single quote would end an enclosing single-quoted scalar
    if "'" in placeholder or state == "'":
        return '"'
    return "'"


def escape_placeholders(text: str) -> str:
    """Make cloud-init placeholders inert; already escaped spans are left alone."""
    out = []
    state, prev = "", "\n"
    for kind, raw, inner in scan(text):
        if kind is Span.LITERAL:
            state, prev = _quote_state(raw, state, prev)
            out.append(raw)
            continue
        if kind is Span.PLACEHOLDER:
            quote = _quote_for(inner, state)
            out.append(f"{PLACEHOLDER_OPEN} {quote}{inner}{quote} {PLACEHOLDER_CLOSE}")
        else:
            out.append(raw)
        prev = raw[-1]
    return "".join(out)


def unescape_placeholders(text: str) -> str:
    """Restore escaped cloud-init placeholders to their original form."""
    return "".join(inner if kind is Span.ESCAPED else raw for kind, raw, inner in scan(text))


def render(
    template: Union[str, bytes],
    context: Dict[str, Any],
    name: str = "<template>",
    escape: bool = False,
) -> str:
    """Render a manifest template with ``[[[ ]]]`` placeholders.

    Args:
        template: Template source
        context: Values available to placeholders
        name: Source name used in error messages
        escape: Escape cloud-init placeholders before rendering

    Returns:
        str: The rendered text

    Raises:
        TemplateError: If the template cannot be parsed or executed
    """
    if isinstance(template, bytes):
        template = template.decode("utf-8")
    if escape:
        template = escape_placeholders(template)

    try:
        compiled = _environment.from_string(_LEADING_DOT.sub(r"\1", template))
    except TemplateSyntaxError as e:
        raise TemplateError(name, f"failed to parse: {e.message} (line {e.lineno})") from e

    try:
        return compiled.render(**context)
    except UndefinedError as e:
        raise TemplateError(name, f"failed to execute: {e}") from e
    except JinjaTemplateError as e:
        raise TemplateError(name, f"failed to execute: {e}") from e


def render_file(path: Union[str, os.PathLike], context: Dict[str, Any], escape: bool = False) -> str:
    """Render a template file from disk."""
    try:
        with open(path, "r") as f:
            source = f.read()
    except OSError as e:
        raise TemplateError(str(path), f"failed to read: {e}") from e
    logger.debug(f"rendering template {path}")
    return render(source, context, name=os.path.basename(str(path)), escape=escape)
