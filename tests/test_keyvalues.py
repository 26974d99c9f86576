from __future__ import annotations

from pathlib import Path

from storescan.formats.keyvalues import parse_file, parse_text


MANIFEST = """// written by Steam
"AppState"
{
    // comment inside a section
    "appid"     "480"
    "name"      "Spacewar"

    "InstalledDepots"
    {
        "481"
        {
            "manifest"  "3183503801510301321"
            "size"      "1024"
        }
    }
}
"""


def test_parses_sections_and_skips_comments() -> None:
    root = parse_text(MANIFEST)
    app_state = root.get_section("AppState")
    assert app_state is not None
    assert app_state.get_string("appid") == "480"
    assert app_state.get_string("name") == "Spacewar"

    depots = app_state.get_section("InstalledDepots")
    assert [key for key, _ in depots.children()] == ["481"]
    assert depots.get_section("481").get_string("manifest") == "3183503801510301321"


def test_lookups_are_case_insensitive() -> None:
    root = parse_text(MANIFEST)
    assert root.get_section("appstate").get_string("APPID") == "480"
    assert "APPSTATE" in root


def test_duplicate_keys_last_value_wins() -> None:
    text = '"AppState"\n{\n  "name" "First"\n  "NAME" "Second"\n}\n'
    assert parse_text(text).get_section("AppState").get_string("name") == "Second"


def test_missing_closing_brace_is_supplied() -> None:
    text = MANIFEST.rstrip().rstrip("}")
    app_state = parse_text(text).get_section("AppState")
    assert app_state.get_string("appid") == "480"
    assert app_state.get_section("InstalledDepots") is not None


def test_extra_closing_brace_drops_the_rest() -> None:
    text = '"AppState"\n{\n  "appid" "480"\n}\n}\n"Other" "x"\n'
    root = parse_text(text)
    assert root.get_section("AppState").get_string("appid") == "480"
    assert root.get_string("Other") is None


def test_unterminated_quote_keeps_earlier_values() -> None:
    text = '"AppState"\n{\n  "appid" "480"\n  "name" "Broken\n}\n'
    app_state = parse_text(text).get_section("AppState")
    assert app_state.get_string("appid") == "480"
    assert app_state.get_string("name") is None


def test_garbage_has_no_sections() -> None:
    root = parse_text("this is not a manifest")
    assert root.get_section("AppState") is None


def test_empty_text() -> None:
    assert len(parse_text("")) == 0


def test_parse_file_reads_bom(tmp_path: Path) -> None:
    path = tmp_path / "appmanifest_480.acf"
    path.write_bytes(b"\xef\xbb\xbf" + MANIFEST.encode("utf-8"))
    assert parse_file(str(path)).get_section("AppState").get_string("appid") == "480"


def test_inline_section_on_one_line() -> None:
    app_state = parse_text('"AppState" { "appid" "480" "name" "Spacewar" }').get_section("AppState")
    assert app_state.get_string("appid") == "480"
    assert app_state.get_string("name") == "Spacewar"


def test_several_pairs_on_one_line() -> None:
    text = '"A"\n{\n"appid" "480" "name" "x"\n"Depots" { "1" { "manifest" "9" } }\n}\n'
    node = parse_text(text).get_section("A")
    assert node.get_string("appid") == "480"
    assert node.get_string("name") == "x"
    assert node.get_section("Depots").get_section("1").get_string("manifest") == "9"


def test_braces_and_comments_inside_quotes_are_kept() -> None:
    text = '"A"\n{\n  "name" "Brace { and } // not a comment" // trailing comment\n  "path" "C:\\\\Games\\\\Foo"\n}\n'
    node = parse_text(text).get_section("A")
    assert node.get_string("name") == "Brace { and } // not a comment"
    assert node.get_string("path") == "C:\\Games\\Foo"
