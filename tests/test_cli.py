import json
import logging

import pytest

from weather_tuner.cli import main, parse_overrides
from weather_tuner.core.presets import save_settings
from weather_tuner.core.params import SessionSettings


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Keep user presets and root logging handlers local to each test"""
    monkeypatch.setenv('HOME', str(tmp_path))
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def run_json(capsys, argv):
    assert main(argv) == 0
    return json.loads(capsys.readouterr().out)


class TestSettingsCommand:
    def test_defaults(self, capsys):
        data = run_json(capsys, ['settings'])
        assert data['mode'] == 'rain'
        assert data['size'] == '1280x720'

    def test_session_options(self, capsys):
        data = run_json(capsys, ['settings', 'snow', '--size', '640x360', '--fps', '24',
                                 '--duration', '5', '--seed', '77'])
        assert data['mode'] == 'snow'
        assert data['size'] == '640x360'
        assert (data['fps'], data['duration'], data['seed']) == (24, 5, 77)

    def test_set_overrides(self, capsys):
        data = run_json(capsys, ['settings', 'rain', '--set', 'angle_deg=30', '--set', 'streakLen=50'])
        assert data['rain']['angleDeg'] == 30
        assert data['rain']['streakLen'] == 50

    def test_size_bounds(self, capsys):
        data = run_json(capsys, ['settings', 'snow', '--min-size', '2', '--max-size', '6'])
        snow = data['snow']
        assert (snow['minFlakeSize'], snow['maxFlakeSize']) == (2, 6)
        assert snow['flakeSize'] == 4
        assert snow['flakeSizeJitter'] == 2

    def test_swapped_size_bounds_are_reordered(self, capsys):
        data = run_json(capsys, ['settings', 'rain', '--min-size', '3', '--max-size', '1'])
        assert (data['rain']['minDropSize'], data['rain']['maxDropSize']) == (1, 3)

    def test_save_and_load(self, capsys, tmp_path):
        path = tmp_path / "session.yaml"
        assert main(['settings', 'snow', '--seed', '5', '-o', str(path)]) == 0
        assert "Saved:" in capsys.readouterr().out

        data = run_json(capsys, ['settings', '--settings', str(path)])
        assert data['mode'] == 'snow'
        assert data['seed'] == 5

    def test_kind_overrides_settings_file(self, capsys, tmp_path):
        path = save_settings(SessionSettings(kind='snow', seed=3), tmp_path / "s.json")
        data = run_json(capsys, ['settings', 'rain', '--settings', str(path)])
        assert data['mode'] == 'rain'
        assert data['seed'] == 3


class TestErrors:
    @pytest.mark.parametrize("argv", [
        ['settings', '--set', 'angle_deg'],
        ['settings', '--set', 'angle_deg=steep'],
        ['settings', '--set', 'hail_size=3'],
        ['command', '--size', '8x8'],
        ['command', '--preset', 'no_such_preset'],
        ['settings', '--settings', 'missing-file.json'],
    ])
    def test_reports_and_fails(self, capsys, argv):
        assert main(argv) == 1
        assert capsys.readouterr().out.startswith("Error:")

    def test_unknown_kind_is_rejected_by_parser(self):
        with pytest.raises(SystemExit):
            main(['settings', 'hail'])


def test_parse_overrides_maps_names():
    assert parse_overrides(['streakLen=50', 'speed-jitter=10'], 'rain') == {
        'streak_len': 50.0,
        'speed_jitter': 10.0,
    }


def test_command_output(capsys):
    assert main(['command', 'snow', '--size', '640x360']) == 0
    out = capsys.readouterr().out.strip()
    assert out.startswith("python3 procedural_overlay.py snow --out snow_alpha.webm")
    assert "--size 640x360" in out
    assert out.endswith("--crf 20")


def test_command_with_preset(capsys):
    assert main(['command', '--preset', 'blizzard']) == 0
    out = capsys.readouterr().out
    assert "Using preset: blizzard" in out
    assert "procedural_overlay.py snow" in out
    assert "--density 2000" in out


class TestPresetsCommand:
    def test_listing(self, capsys, tmp_path):
        assert main(['presets', '--presets-dir', str(tmp_path / "p")]) == 0
        out = capsys.readouterr().out
        assert "[RAIN]" in out and "[SNOW]" in out
        assert "Total: 6 presets" in out

    def test_tag_filter(self, capsys):
        assert main(['presets', '--tag', 'storm']) == 0
        assert "Total: 2 presets" in capsys.readouterr().out

    def test_info(self, capsys):
        assert main(['presets', '--info', 'blizzard']) == 0
        out = capsys.readouterr().out
        assert "Kind: snow" in out
        assert "Source: built-in" in out

    def test_info_missing(self, capsys):
        assert main(['presets', '--info', 'monsoon']) == 1
        assert "not found" in capsys.readouterr().out


def test_export_gif(capsys, tmp_path):
    output = tmp_path / "snow.gif"
    code = main([
        'export', 'snow', '--size', '64x48', '--fps', '4', '--duration', '1',
        '--format', 'gif', '--no-fallback', '-q', 'fast', '-o', str(output),
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "Frames: 4 (gif)" in out
    assert "Done!" in out
    assert output.exists()


def test_export_frames(capsys, tmp_path):
    output = tmp_path / "rain.png"
    assert main([
        'export', 'rain', '--size', '32x32', '--fps', '3', '--duration', '1',
        '--format', 'frames', '-q', 'fast', '-o', str(output), '--background', 'black',
    ]) == 0
    frames = sorted(p.name for p in (tmp_path / "rain").iterdir())
    assert frames == ["frame_0000.png", "frame_0001.png", "frame_0002.png"]
