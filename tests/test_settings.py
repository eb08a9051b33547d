from dataclasses import replace

from fenceplan.settings import EngineConfig, load_config, save_config


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(tmp_path / "absent.ini") == EngineConfig()


def test_save_then_load(tmp_path):
    path = tmp_path / "engine.ini"
    config = replace(EngineConfig(), panel_length_mm=2400.0, auto_even_spacing=False, corner_tol_deg=10.0)

    save_config(config, path)
    loaded = load_config(path)

    assert loaded.panel_length_mm == 2400.0
    assert loaded.auto_even_spacing is False
    assert loaded.corner_tol_deg == 10.0
    assert loaded.max_board_length_mm == EngineConfig().max_board_length_mm


def test_settings_are_grouped(tmp_path):
    path = tmp_path / "engine.ini"
    save_config(EngineConfig(), path)

    text = path.read_text()
    for group in ("[network]", "[posts]", "[panels]", "[gates]", "[decking]", "[snapping]"):
        assert group in text
