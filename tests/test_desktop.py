import pytest

from core import (
    APPLICATION,
    DIRECTORY,
    LINK,
    UNKNOWN,
    DesktopFile,
    DesktopFileError,
    list_desktop_apps,
)

DOUBLECMD = """
[Desktop Entry]
# Comment
Name=Double Commander
Name[ru]=Двухпанельный коммандер
GenericName=File manager
GenericName[ru]=Файловый менеджер
Comment=Double Commander is a cross platform open source file manager with two panels side by side.
Comment[ru]=Double Commander - кроссплатформенный файловый менеджер.
Terminal=false
Icon=doublecmd
Icon[ru]=doublecmd_ru
Exec=doublecmd %f
TryExec=doublecmd
Type=Application
Categories=Application;Utility;FileManager;
Keywords=folder;manager;disk;filesystem;operations;
Keywords[ru]=папка;директория;диск;файловый;менеджер;
Actions=OpenDirectory;NotPresented;Settings;X-NoName;
MimeType=inode/directory;application/x-directory;
NoDisplay=false
Hidden=false
StartupNotify=true
DBusActivatable=true
Path=/opt/doublecmd
OnlyShowIn=GNOME;XFCE;LXDE;
NotShowIn=KDE;

[Desktop Action OpenDirectory]
Name=Open directory
Name[ru]=Открыть папку
Icon=open
Exec=doublecmd %u

[X-NoName]
Icon=folder

[Desktop Action Settings]
Name=Settings
Name[ru]=Настройки
Icon=edit
Exec=doublecmd settings

[Desktop Action Notspecified]
Name=Notspecified Action
""".strip()


def write_desktop(directory, name, text):
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip(), encoding="utf-8")
    return path


def test_parse_desktop_file(tmp_path):
    path = write_desktop(tmp_path, "doublecmd.desktop", DOUBLECMD)
    df = DesktopFile.from_file(path)
    assert df.file_name == str(path)
    assert df.desktop_entry.name == "Desktop Entry"
    assert df.display_name() == "Double Commander"
    assert df.display_name("ru_RU") == "Двухпанельный коммандер"
    assert df.generic_name("ru_RU") == "Файловый менеджер"
    assert df.comment("ru_RU") == "Double Commander - кроссплатформенный файловый менеджер."
    assert df.icon_name() == "doublecmd"
    assert df.icon_name("ru_RU") == "doublecmd_ru"
    assert df.try_exec_value() == "doublecmd"
    assert df.working_directory() == "/opt/doublecmd"
    assert df.type == APPLICATION
    assert not df.terminal
    assert not df.no_display
    assert not df.hidden
    assert df.startup_notify
    assert df.dbus_activatable


def test_list_accessors():
    df = DesktopFile.from_string(DOUBLECMD, "doublecmd.desktop")
    assert list(df.categories()) == ["Application", "Utility", "FileManager"]
    assert list(df.keywords()) == ["folder", "manager", "disk", "filesystem", "operations"]
    assert list(df.keywords("ru_RU")) == ["папка", "директория", "диск", "файловый", "менеджер"]
    assert list(df.actions()) == ["OpenDirectory", "NotPresented", "Settings", "X-NoName"]
    assert list(df.mime_types()) == ["inode/directory", "application/x-directory"]
    assert list(df.only_show_in()) == ["GNOME", "XFCE", "LXDE"]
    assert list(df.not_show_in()) == ["KDE"]
    assert df.group("X-NoName") is not None


def test_actions_are_filtered():
    df = DesktopFile.from_string(DOUBLECMD, "doublecmd.desktop")
    actions = [
        (action.display_name(), action.display_name("ru"), action.icon_name(), action.exec_value())
        for action in df.by_action()
    ]
    assert actions == [
        ("Open directory", "Открыть папку", "open", "doublecmd %u"),
        ("Settings", "Настройки", "edit", "doublecmd settings"),
    ]
    assert df.action("OpenDirectory").expand_exec(["path/to/file"]) == ["doublecmd", "path/to/file"]
    assert df.action("NotPresented") is None
    assert df.action("Notspecified") is None
    assert df.action("X-NoName") is None


def test_expand_exec_value_uses_locale_and_file_name():
    contents = """
[Desktop Entry]
Name=Program
Name[ru]=Программа
Exec="quoted program" %i -w %c -f %k %U %D %u %f %F
Icon=folder
Icon[ru]=folder_ru
"""
    df = DesktopFile.from_string(contents, "/example.desktop")
    assert df.expand_exec(["one", "two"], "ru") == [
        "quoted program", "--icon", "folder_ru", "-w", "Программа", "-f", "/example.desktop",
        "one", "two", "one", "one", "one", "two",
    ]


def test_exec_value_is_unescaped_before_tokenizing():
    df = DesktopFile.from_string('[Desktop Entry]\nExec=app "a\\\\\\\\b" x\\sy\n')
    assert df.exec_value() == 'app "a\\\\b" x y'
    assert df.expand_exec() == ["app", "a\\b", "x", "y"]


def test_show_in():
    df = DesktopFile()
    df.set_not_show_in(["GNOME", "MATE"])
    assert df.show_in("KDE")
    assert df.show_in("")
    assert not df.show_in("GNOME")
    df.set_only_show_in(["LXDE", "XFCE"])
    assert df.show_in("XFCE")
    assert not df.show_in("")
    assert not df.show_in("KDE")
    assert not df.show_in("MATE")


def test_type_detection():
    df = DesktopFile.from_string("[Desktop Entry]\nType=Link\nURL=https://github.com/")
    assert df.type == LINK
    assert df.url() == "https://github.com/"
    assert DesktopFile.from_string("[Desktop Entry]", ".directory").type == DIRECTORY
    df = DesktopFile()
    assert df.type == UNKNOWN
    df.type = APPLICATION
    assert df.desktop_entry.escaped_value("Type") == "Application"
    df.type = UNKNOWN
    assert "Type" not in df.desktop_entry


def test_new_desktop_file():
    df = DesktopFile()
    assert df.desktop_entry.escaped_value("Version") == "1.1"
    assert list(df.categories()) == []


def test_missing_desktop_entry():
    with pytest.raises(DesktopFileError) as info:
        DesktopFile.from_string("[X-SomeGroup]\nKey=Value")
    assert info.value.line_number == 0


def test_key_outside_group():
    with pytest.raises(DesktopFileError) as info:
        DesktopFile.from_string("Key=Value\n[Desktop Entry]")
    assert info.value.line_number == 1


def test_invalid_key_policies():
    contents = "[Desktop Entry]\nValid=Key\n$=Invalid"
    with pytest.raises(DesktopFileError) as info:
        DesktopFile.from_string(contents)
    assert info.value.key == "$"
    assert info.value.value == "Invalid"
    df = DesktopFile.from_string(contents, invalid_key_policy="skip")
    assert "$" not in df.desktop_entry
    df = DesktopFile.from_string(contents, invalid_key_policy="save")
    assert df.desktop_entry.escaped_value("$") == "Invalid"


def test_group_policies():
    contents = "[Desktop Entry]\nActions=Action1;\n[Desktop Action Action1]\nName=Action1 Name\n[X-SomeGroup]\nKey=Value"
    df = DesktopFile.from_string(contents, action_policy="skip")
    assert df.action("Action1") is None
    df = DesktopFile.from_string(contents, extension_policy="skip")
    assert df.group("X-SomeGroup") is None
    assert df.action("Action1") is not None

    contents = "[Desktop Entry]\nName=Name\n[Unknown]\nKey=Value"
    assert DesktopFile.from_string(contents).group("Unknown") is None
    assert DesktopFile.from_string(contents, unknown_policy="preserve").group("Unknown") is not None
    with pytest.raises(DesktopFileError):
        DesktopFile.from_string(contents, unknown_policy="error")


def test_remove_group_keeps_entry():
    df = DesktopFile()
    df.add_group("X-Action")
    assert df.remove_group("X-Action")
    assert df.group("X-Action") is None
    assert not df.remove_group("Desktop Entry")
    assert df.desktop_entry is not None


def test_setters_validate():
    df = DesktopFile()
    df.set_icon_name("base")
    df.set_icon_name("/absolute/path")
    df.set_try_exec_value("base")
    with pytest.raises(DesktopFileError):
        df.set_icon_name("not/absolute")
    with pytest.raises(DesktopFileError):
        df.set_try_exec_value("./relative")
    with pytest.raises(DesktopFileError):
        df.set_working_directory("/foo\0/bar")


def test_list_setters_round_trip():
    df = DesktopFile()
    df.set_categories(["Development", "Compilers", "One;Two", "Three\\;Four", "New\nLine"])
    assert list(df.categories()) == ["Development", "Compilers", "One;Two", "Three\\;Four", "New\nLine"]


def test_save_and_reload(tmp_path):
    df = DesktopFile.from_string(DOUBLECMD, "doublecmd.desktop")
    df.terminal = True
    df.desktop_entry.set_value("Comment", "Do\nthings")
    path = tmp_path / "saved.desktop"
    df.save(path)
    reloaded = DesktopFile.from_file(path)
    assert reloaded.terminal
    assert reloaded.comment() == "Do\nthings"
    assert reloaded.display_name("ru") == "Двухпанельный коммандер"
    assert [action.name for action in reloaded.by_action()] == ["OpenDirectory", "Settings"]


def test_desktop_file_id():
    contents = "[Desktop Entry]\nName=Program\nType=Directory"
    app_paths = ["/usr/share/applications", "/usr/local/share/applications"]
    df = DesktopFile.from_string(contents, "/usr/share/applications/kde/example.desktop")
    assert df.id(app_paths) == "kde-example.desktop"
    df = DesktopFile.from_string(contents, "/etc/desktop/example.desktop")
    assert df.id(app_paths) is None
    assert DesktopFile.from_string(contents).id(app_paths) is None


def test_list_desktop_apps(tmp_path):
    user_dir = tmp_path / "user"
    system_dir = tmp_path / "system"
    write_desktop(user_dir, "editor.desktop", "[Desktop Entry]\nType=Application\nName=Zed Editor\nExec=zed %F")
    write_desktop(system_dir, "editor.desktop", "[Desktop Entry]\nType=Application\nName=Old Editor\nExec=old")
    write_desktop(system_dir, "kde/viewer.desktop", "[Desktop Entry]\nType=Application\nName=viewer\nExec=view")
    write_desktop(system_dir, "hidden.desktop", "[Desktop Entry]\nType=Application\nName=Hidden\nExec=h\nNoDisplay=true")
    write_desktop(system_dir, "link.desktop", "[Desktop Entry]\nType=Link\nName=Link\nURL=https://example.org")
    write_desktop(system_dir, "broken.desktop", "no group here")

    apps = list_desktop_apps([str(user_dir), str(system_dir)])
    assert [app.display_name() for app in apps] == ["viewer", "Zed Editor"]
    assert apps[0].id([str(user_dir), str(system_dir)]) == "kde-viewer.desktop"
