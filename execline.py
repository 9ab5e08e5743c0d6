"""Quoting and field-code handling for the Exec key of desktop entries."""

import enum
from dataclasses import dataclass

WHITESPACE = " \t\n\r"

# Characters that take a backslash inside a double-quoted section.
QUOTED_ESCAPES = '"`$\\'

# Characters that force an argument to be quoted.
RESERVED = WHITESPACE + "\"'\\><~|&;$*?#()`"


class ExecError(ValueError):
    pass


class QuoteError(ExecError):
    def __init__(self, message, exec_line):
        super().__init__(message)
        self.exec_line = exec_line


class UnknownFieldCodeError(ExecError):
    def __init__(self, code, token):
        super().__init__(f"Unknown field code {code!r} in {token!r}")
        self.code = code
        self.token = token


class FieldCode(enum.Enum):
    SINGLE_FILE = "f"
    MULTI_FILE = "F"
    SINGLE_URL = "u"
    MULTI_URL = "U"
    ICON = "i"
    TRANSLATED_NAME = "c"
    SOURCE_PATH = "k"
    PERCENT = "%"
    DIRECTORY = "d"
    DIRECTORIES = "D"
    FILE_NAME = "n"
    FILE_NAMES = "N"
    DEVICE = "v"
    MINI_ICON = "m"

    def __str__(self):
        return "%" + self.value


DEPRECATED_CODES = frozenset(
    {
        FieldCode.DIRECTORY,
        FieldCode.DIRECTORIES,
        FieldCode.FILE_NAME,
        FieldCode.FILE_NAMES,
        FieldCode.DEVICE,
        FieldCode.MINI_ICON,
    }
)

MULTI_CODES = frozenset({FieldCode.MULTI_FILE, FieldCode.MULTI_URL})


@dataclass(frozen=True)
class ExpansionContext:
    urls: tuple = ()
    icon_name: str = ""
    display_name: str = ""
    source_path: str = ""

    def __post_init__(self):
        object.__setattr__(self, "urls", tuple(self.urls or ()))
        object.__setattr__(self, "icon_name", self.icon_name or "")
        object.__setattr__(self, "display_name", self.display_name or "")
        object.__setattr__(self, "source_path", self.source_path or "")

    @property
    def first_url(self):
        return self.urls[0] if self.urls else ""


# Each code maps the context (and the url picked for this token) to the text
# that replaces it. Multi-value codes get one url per generated argument.
_SUBSTITUTIONS = {
    FieldCode.SINGLE_FILE: lambda context, url: context.first_url,
    FieldCode.SINGLE_URL: lambda context, url: context.first_url,
    FieldCode.MULTI_FILE: lambda context, url: url,
    FieldCode.MULTI_URL: lambda context, url: url,
    FieldCode.ICON: lambda context, url: context.icon_name,
    FieldCode.TRANSLATED_NAME: lambda context, url: context.display_name,
    FieldCode.SOURCE_PATH: lambda context, url: context.source_path,
}
_SUBSTITUTIONS.update({code: lambda context, url: "" for code in DEPRECATED_CODES})


def tokenize_exec(exec_line):
    tokens = []
    current = []
    in_token = False
    quoted = False
    index = 0
    length = len(exec_line)
    while index < length:
        char = exec_line[index]
        if quoted:
            if char == '"':
                quoted = False
            elif char == "\\":
                if index + 1 >= length:
                    raise QuoteError(f"Unterminated quote in {exec_line!r}", exec_line)
                following = exec_line[index + 1]
                if following not in QUOTED_ESCAPES:
                    current.append(char)
                current.append(following)
                index += 1
            else:
                current.append(char)
        elif char == '"':
            quoted = True
            in_token = True
        elif char in WHITESPACE:
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(char)
            in_token = True
        index += 1

    if quoted:
        raise QuoteError(f"Unterminated quote in {exec_line!r}", exec_line)
    if in_token:
        tokens.append("".join(current))
    return tokens


def parse_field_codes(token):
    """Split a token into literal strings and FieldCode members.

    ``%%`` is folded into the surrounding literal text, so the result never
    contains FieldCode.PERCENT.
    """
    parts = []
    literal = []
    index = 0
    while index < len(token):
        char = token[index]
        if char != "%":
            literal.append(char)
            index += 1
            continue
        if index + 1 >= len(token):
            raise UnknownFieldCodeError("%", token)
        try:
            code = FieldCode(token[index + 1])
        except ValueError:
            raise UnknownFieldCodeError(token[index : index + 2], token) from None
        if code is FieldCode.PERCENT:
            literal.append("%")
        else:
            if literal:
                parts.append("".join(literal))
                literal = []
            parts.append(code)
        index += 2
    if literal:
        parts.append("".join(literal))
    return parts


def _render(parts, context, url=""):
    return "".join(
        part if isinstance(part, str) else _SUBSTITUTIONS[part](context, url)
        for part in parts
    )


def expand_exec_args(tokens, context=None):
    if context is None:
        context = ExpansionContext()
    argv = []
    for token in tokens:
        parts = parse_field_codes(token)

        if parts == [FieldCode.ICON]:
            if context.icon_name:
                argv.extend(["--icon", context.icon_name])
            continue

        if any(part in MULTI_CODES for part in parts if not isinstance(part, str)):
            argv.extend(_render(parts, context, url) for url in context.urls)
            continue

        text = _render(parts, context)
        # Drop tokens that only became empty because their codes vanished.
        if text or all(isinstance(part, str) for part in parts):
            argv.append(text)
    return argv


def expand_exec(exec_line, context=None):
    return expand_exec_args(tokenize_exec(exec_line), context)


def quote_exec_arg(arg):
    arg = arg.replace("%", "%%")
    if arg and not any(char in RESERVED for char in arg):
        return arg
    escaped = "".join("\\" + char if char in QUOTED_ESCAPES else char for char in arg)
    return f'"{escaped}"'


def build_exec(args):
    rendered = []
    for arg in args:
        if isinstance(arg, FieldCode):
            rendered.append(str(arg))
        else:
            rendered.append(quote_exec_arg(arg))
    return " ".join(rendered)
