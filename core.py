import configparser
import io
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from execline import ExecError, ExpansionContext, expand_exec_args, tokenize_exec

logger = logging.getLogger(__name__)

ENTRY_GROUP = "Desktop Entry"
ACTION_PREFIX = "Desktop Action "
EXTENSION_PREFIX = "X-"

APPLICATION = "Application"
LINK = "Link"
DIRECTORY = "Directory"
UNKNOWN = "Unknown"

SKIP = "skip"
PRESERVE = "preserve"
ERROR = "error"
SAVE = "save"

TERMINAL_CANDIDATES = (
    "x-terminal-emulator",
    "xdg-terminal",
    "konsole",
    "gnome-terminal",
    "xfce4-terminal",
    "xterm",
)

_KEY_RE = re.compile(r"^[A-Za-z0-9-]+(\[[^\]\s]+\])?$")
_ENCODING_RE = re.compile(r"\.[^@]*")
_UNESCAPES = {"s": " ", "n": "\n", "t": "\t", "r": "\r", "\\": "\\"}


class DesktopFileError(Exception):
    def __init__(self, message, line_number=None, group=None, key=None, value=None):
        super().__init__(message)
        self.line_number = line_number
        self.group = group
        self.key = key
        self.value = value


class TerminalUnavailableError(RuntimeError):
    pass


class ProcessSpawnError(OSError):
    pass


class SplitValues:
    """Elements of a ``;``-separated list value.

    Iterating starts a fresh scan each time. Empty elements are skipped and
    ``\\;`` stands for a literal semicolon inside an element.
    """

    def __init__(self, value):
        self.value = value or ""

    def __iter__(self):
        value = self.value
        start = 0
        for index, char in enumerate(value):
            if char == ";" and not (index and value[index - 1] == "\\"):
                item = value[start:index].replace("\\;", ";")
                if item:
                    yield item
                start = index + 1
        item = value[start:].replace("\\;", ";")
        if item:
            yield item

    def __repr__(self):
        return f"SplitValues({self.value!r})"


def split_values(value):
    return SplitValues(value)


def join_values(values):
    result = ";".join(value.replace(";", "\\;") for value in values if value)
    if not result:
        return ""
    return result + ";"


def unescape_value(value):
    if "\\" not in value:
        return value
    result = []
    index = 0
    while index < len(value):
        char = value[index]
        if char == "\\" and index + 1 < len(value) and value[index + 1] in _UNESCAPES:
            result.append(_UNESCAPES[value[index + 1]])
            index += 2
            continue
        result.append(char)
        index += 1
    return "".join(result)


def escape_value(value):
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )


def locale_candidates(locale):
    if not locale:
        return []
    locale = _ENCODING_RE.sub("", locale)
    lang, _, modifier = locale.partition("@")
    lang, _, country = lang.partition("_")
    candidates = []
    if country and modifier:
        candidates.append(f"{lang}_{country}@{modifier}")
    if country:
        candidates.append(f"{lang}_{country}")
    if modifier:
        candidates.append(f"{lang}@{modifier}")
    candidates.append(lang)
    return candidates


def is_valid_key(key):
    return bool(_KEY_RE.match(key))


def desktop_id(path, base_dirs):
    if not path:
        return None
    path = os.path.normpath(path)
    for base in base_dirs:
        if not base:
            continue
        prefix = os.path.normpath(base).rstrip(os.sep) + os.sep
        if path.startswith(prefix) and len(path) > len(prefix):
            relative = path[len(prefix):]
            return relative.replace(os.sep, "-").replace("/", "-")
    return None


def classify_group(name):
    if name == ENTRY_GROUP:
        return "entry"
    if name.startswith(ACTION_PREFIX):
        return "action"
    if name.startswith(EXTENSION_PREFIX):
        return "extension"
    return "unknown"


class DesktopGroup:
    def __init__(self, name, validate_keys=True):
        self.name = name
        self.validate_keys = validate_keys
        self._entries = {}

    def __contains__(self, key):
        return key in self._entries

    def __repr__(self):
        return f"DesktopGroup({self.name!r})"

    def keys(self):
        return list(self._entries)

    def items(self):
        return list(self._entries.items())

    def escaped_value(self, key, locale=None):
        for candidate in locale_candidates(locale):
            localized = f"{key}[{candidate}]"
            if localized in self._entries:
                return self._entries[localized]
        return self._entries.get(key, "")

    def value(self, key, locale=None):
        return unescape_value(self.escaped_value(key, locale))

    def set_escaped_value(self, key, value, invalid_key_policy=ERROR):
        if self.validate_keys and not is_valid_key(key):
            if invalid_key_policy == SKIP:
                return None
            if invalid_key_policy != SAVE:
                raise DesktopFileError("key is invalid", group=self.name, key=key, value=value)
        self._entries[key] = value
        return value

    def set_value(self, key, value, invalid_key_policy=ERROR):
        self.set_escaped_value(key, escape_value(value), invalid_key_policy)
        return value

    def remove(self, key):
        return self._entries.pop(key, None) is not None

    def bool_value(self, key):
        return self.escaped_value(key) in ("true", "1")

    def set_bool_value(self, key, flag):
        self.set_escaped_value(key, "true" if flag else "false")
        return flag

    def list_value(self, key, locale=None):
        return split_values(self.value(key, locale))

    def set_list_value(self, key, values):
        return self.set_value(key, join_values(values))


def _new_parser():
    parser = configparser.ConfigParser(
        interpolation=None,
        delimiters=("=",),
        comment_prefixes=("#",),
        empty_lines_in_values=False,
        strict=False,
        # No header can be a newline, so no group inherits default keys.
        default_section="\n",
    )
    parser.optionxform = str
    return parser


def read_groups(
    text,
    source=None,
    action_policy=PRESERVE,
    extension_policy=PRESERVE,
    unknown_policy=SKIP,
    invalid_key_policy=ERROR,
):
    parser = _new_parser()
    try:
        parser.read_string(text, source=source or "<string>")
    except configparser.MissingSectionHeaderError as exc:
        raise DesktopFileError(
            f"Entry outside of any group: {exc.line.strip()!r}", line_number=exc.lineno
        ) from exc
    except configparser.ParsingError as exc:
        line_number, line = exc.errors[0]
        raise DesktopFileError(f"Invalid line: {line}", line_number=line_number) from exc

    groups = []
    for name in parser.sections():
        kind = classify_group(name)
        if kind == "action" and action_policy == SKIP:
            continue
        if kind == "extension" and extension_policy == SKIP:
            continue
        if kind == "unknown":
            if unknown_policy == ERROR:
                raise DesktopFileError(
                    f"Invalid group name: {name!r}. Must start with "
                    f"{ACTION_PREFIX!r} or {EXTENSION_PREFIX!r}"
                )
            if unknown_policy == SKIP:
                continue

        group = DesktopGroup(name, validate_keys=kind in ("entry", "action"))
        for key, value in parser.items(name, raw=True):
            try:
                group.set_escaped_value(key, value, invalid_key_policy)
            except DesktopFileError as exc:
                raise DesktopFileError(
                    f"Invalid key {key!r} in group {name!r}", group=name, key=key, value=value
                ) from exc
        groups.append(group)
    return groups


def find_terminal_command(which=shutil.which):
    for name in TERMINAL_CANDIDATES:
        path = which(name)
        if path:
            return [path, "-e"]
    return None


@dataclass(frozen=True)
class SpawnParams:
    argv: list
    working_directory: str = None
    terminal_command: list = None


def build_spawn_params(argv, working_directory=None, terminal=False, terminal_command=find_terminal_command):
    argv = list(argv)
    if not argv:
        raise ExecError("Nothing to execute")
    command = None
    if terminal:
        command = terminal_command() if terminal_command else None
        if not command:
            raise TerminalUnavailableError(
                f"Terminal requested for {argv[0]!r} but no terminal emulator was found"
            )
        command = list(command)
        argv = command + argv
    return SpawnParams(argv, working_directory or None, command)


def spawn_process(params):
    logger.debug("Launching %s (cwd=%s)", params.argv, params.working_directory)
    try:
        return subprocess.Popen(
            params.argv,
            cwd=params.working_directory,
            start_new_session=True,
        )
    except OSError as exc:
        raise ProcessSpawnError(f"Could not launch {params.argv[0]!r}: {exc}") from exc


def xdg_open(url, spawn=spawn_process):
    return spawn(SpawnParams(["xdg-open", url]))


def _check_path_or_base_name(group, key, value):
    if not os.path.isabs(value) and os.path.basename(value) != value:
        raise DesktopFileError(
            f"{key} must be absolute path or base name", group=group, key=key, value=value
        )


class DesktopAction:
    def __init__(self, name, group, desktop_file):
        self.name = name
        self.group = group
        self.desktop_file = desktop_file

    def __repr__(self):
        return f"DesktopAction({self.name!r})"

    def display_name(self, locale=None):
        return self.group.value("Name", locale)

    def icon_name(self, locale=None):
        return self.group.value("Icon", locale)

    def exec_value(self):
        return self.group.value("Exec")

    def expansion_context(self, urls=(), locale=None):
        if isinstance(urls, str):
            urls = [urls]
        return ExpansionContext(
            urls,
            self.icon_name(locale),
            self.display_name(locale),
            self.desktop_file.file_name,
        )

    def expand_exec(self, urls=(), locale=None):
        return expand_exec_args(tokenize_exec(self.exec_value()), self.expansion_context(urls, locale))

    def spawn_params(self, urls=(), locale=None, terminal_command=find_terminal_command):
        return build_spawn_params(
            self.expand_exec(urls, locale),
            self.desktop_file.working_directory(),
            self.desktop_file.terminal,
            terminal_command,
        )

    def start(self, urls=(), locale=None, terminal_command=find_terminal_command, spawn=spawn_process):
        return spawn(self.spawn_params(urls, locale, terminal_command))


class DesktopFile:
    def __init__(self, groups=None, file_name=None):
        if groups is None:
            entry = DesktopGroup(ENTRY_GROUP)
            entry.set_escaped_value("Version", "1.1")
            groups = [entry]
        self._groups = {}
        for group in groups:
            self._groups.setdefault(group.name, group)
        if ENTRY_GROUP not in self._groups:
            raise DesktopFileError(f"No {ENTRY_GROUP!r} group", line_number=0)
        self.file_name = str(file_name) if file_name else ""

    @classmethod
    def from_string(cls, text, file_name=None, **options):
        return cls(read_groups(text, source=file_name, **options), file_name)

    @classmethod
    def from_file(cls, path, **options):
        try:
            text = Path(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise DesktopFileError(f"Not valid UTF-8: {exc}") from exc
        return cls.from_string(text, str(path), **options)

    def __repr__(self):
        return f"DesktopFile({self.file_name!r})"

    @property
    def desktop_entry(self):
        return self._groups[ENTRY_GROUP]

    def group(self, name):
        return self._groups.get(name)

    def groups(self):
        return list(self._groups.values())

    def add_group(self, name):
        if name in self._groups:
            raise DesktopFileError(f"Group {name!r} already exists", group=name)
        group = DesktopGroup(name, validate_keys=classify_group(name) in ("entry", "action"))
        self._groups[name] = group
        return group

    def remove_group(self, name):
        if name == ENTRY_GROUP:
            return False
        return self._groups.pop(name, None) is not None

    def to_string(self):
        parser = _new_parser()
        for group in self._groups.values():
            parser.add_section(group.name)
            for key, value in group.items():
                parser.set(group.name, key, value)
        buffer = io.StringIO()
        parser.write(buffer, space_around_delimiters=False)
        return buffer.getvalue()

    def save(self, path):
        Path(path).write_text(self.to_string(), encoding="utf-8")
        self.file_name = str(path)

    @property
    def type(self):
        value = self.desktop_entry.escaped_value("Type")
        if value in (APPLICATION, LINK, DIRECTORY):
            return value
        if self.file_name.endswith(".directory"):
            return DIRECTORY
        return UNKNOWN

    @type.setter
    def type(self, value):
        if value == UNKNOWN:
            self.desktop_entry.remove("Type")
        elif value in (APPLICATION, LINK, DIRECTORY):
            self.desktop_entry.set_escaped_value("Type", value)
        else:
            raise ValueError(f"Unknown desktop entry type {value!r}")

    def display_name(self, locale=None):
        return self.desktop_entry.value("Name", locale)

    def generic_name(self, locale=None):
        return self.desktop_entry.value("GenericName", locale)

    def comment(self, locale=None):
        return self.desktop_entry.value("Comment", locale)

    def icon_name(self, locale=None):
        return self.desktop_entry.value("Icon", locale)

    def set_icon_name(self, icon):
        _check_path_or_base_name(ENTRY_GROUP, "Icon", icon)
        return self.desktop_entry.set_value("Icon", icon)

    def exec_value(self):
        return self.desktop_entry.value("Exec")

    def try_exec_value(self):
        return self.desktop_entry.value("TryExec")

    def set_try_exec_value(self, try_exec):
        _check_path_or_base_name(ENTRY_GROUP, "TryExec", try_exec)
        return self.desktop_entry.set_value("TryExec", try_exec)

    def url(self):
        return self.desktop_entry.value("URL")

    def working_directory(self):
        return self.desktop_entry.value("Path")

    def set_working_directory(self, path):
        if not path or "\0" in path:
            raise DesktopFileError(
                "Working directory must be valid path", group=ENTRY_GROUP, key="Path", value=path
            )
        if os.name == "posix" and not os.path.isabs(path):
            raise DesktopFileError(
                "Working directory must be absolute path", group=ENTRY_GROUP, key="Path", value=path
            )
        return self.desktop_entry.set_value("Path", path)

    @property
    def terminal(self):
        return self.desktop_entry.bool_value("Terminal")

    @terminal.setter
    def terminal(self, flag):
        self.desktop_entry.set_bool_value("Terminal", flag)

    @property
    def no_display(self):
        return self.desktop_entry.bool_value("NoDisplay")

    @no_display.setter
    def no_display(self, flag):
        self.desktop_entry.set_bool_value("NoDisplay", flag)

    @property
    def hidden(self):
        return self.desktop_entry.bool_value("Hidden")

    @hidden.setter
    def hidden(self, flag):
        self.desktop_entry.set_bool_value("Hidden", flag)

    @property
    def dbus_activatable(self):
        return self.desktop_entry.bool_value("DBusActivatable")

    @dbus_activatable.setter
    def dbus_activatable(self, flag):
        self.desktop_entry.set_bool_value("DBusActivatable", flag)

    @property
    def startup_notify(self):
        return self.desktop_entry.bool_value("StartupNotify")

    @startup_notify.setter
    def startup_notify(self, flag):
        self.desktop_entry.set_bool_value("StartupNotify", flag)

    def categories(self):
        return self.desktop_entry.list_value("Categories")

    def set_categories(self, values):
        return self.desktop_entry.set_list_value("Categories", values)

    def keywords(self, locale=None):
        return self.desktop_entry.list_value("Keywords", locale)

    def set_keywords(self, values):
        return self.desktop_entry.set_list_value("Keywords", values)

    def mime_types(self):
        return self.desktop_entry.list_value("MimeType")

    def set_mime_types(self, values):
        return self.desktop_entry.set_list_value("MimeType", values)

    def actions(self):
        return self.desktop_entry.list_value("Actions")

    def set_actions(self, values):
        return self.desktop_entry.set_list_value("Actions", values)

    def only_show_in(self):
        return self.desktop_entry.list_value("OnlyShowIn")

    def set_only_show_in(self, values):
        return self.desktop_entry.set_list_value("OnlyShowIn", values)

    def not_show_in(self):
        return self.desktop_entry.list_value("NotShowIn")

    def set_not_show_in(self, values):
        return self.desktop_entry.set_list_value("NotShowIn", values)

    def show_in(self, desktop_environment):
        if desktop_environment in self.not_show_in():
            return False
        only_in = list(self.only_show_in())
        return not only_in or desktop_environment in only_in

    def id(self, app_paths):
        return desktop_id(self.file_name, app_paths)

    def action(self, name):
        if name not in self.actions():
            return None
        group = self.group(ACTION_PREFIX + name)
        if group is None or not group.value("Name"):
            return None
        return DesktopAction(name, group, self)

    def by_action(self):
        for name in self.actions():
            action = self.action(name)
            if action is not None:
                yield action

    def expansion_context(self, urls=(), locale=None):
        if isinstance(urls, str):
            urls = [urls]
        return ExpansionContext(urls, self.icon_name(locale), self.display_name(locale), self.file_name)

    def expand_exec(self, urls=(), locale=None):
        return expand_exec_args(tokenize_exec(self.exec_value()), self.expansion_context(urls, locale))

    def spawn_params(self, urls=(), locale=None, terminal_command=find_terminal_command):
        return build_spawn_params(
            self.expand_exec(urls, locale),
            self.working_directory(),
            self.terminal,
            terminal_command,
        )

    def start_application(self, urls=(), locale=None, terminal_command=find_terminal_command, spawn=spawn_process):
        return spawn(self.spawn_params(urls, locale, terminal_command))

    def start_link(self, spawn=spawn_process):
        url = self.url()
        if not url:
            raise DesktopFileError("No URL to open", group=ENTRY_GROUP, key="URL")
        return xdg_open(url, spawn)

    def start(self, urls=(), locale=None, terminal_command=find_terminal_command, spawn=spawn_process):
        entry_type = self.type
        if entry_type == APPLICATION:
            return self.start_application(urls, locale, terminal_command, spawn)
        if entry_type == LINK:
            return self.start_link(spawn)
        if entry_type == DIRECTORY:
            raise DesktopFileError("Don't know how to start Directory")
        raise DesktopFileError("Unknown desktop entry type")


def default_application_paths():
    return [
        str(Path.home() / ".local" / "share" / "applications"),
        "/usr/local/share/applications",
        "/usr/share/applications",
    ]


def list_desktop_apps(paths=None):
    if paths is None:
        paths = default_application_paths()
    apps = []
    seen = set()
    for base in paths:
        base_path = Path(base)
        if not base_path.is_dir():
            continue
        for desktop_path in sorted(base_path.rglob("*.desktop")):
            entry_id = desktop_id(str(desktop_path), [str(base_path)])
            # An id found in an earlier directory masks later ones, even when hidden.
            if entry_id in seen:
                continue
            seen.add(entry_id)
            try:
                desktop_file = DesktopFile.from_file(desktop_path)
            except (DesktopFileError, OSError) as exc:
                logger.warning("Skipping %s: %s", desktop_path, exc)
                continue
            if desktop_file.type != APPLICATION or desktop_file.hidden or desktop_file.no_display:
                continue
            if not desktop_file.exec_value():
                continue
            apps.append(desktop_file)
    apps.sort(key=lambda item: item.display_name().lower())
    return apps
