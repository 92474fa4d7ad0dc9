"""
Tests for the CLI module.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from pass_predictor.cli import main

START = "2018-12-08 18:00:00"
MUNICH = ['--lat', '48.1351', '--lon', '11.5820', '--height', '520']


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


def _json_output(output: str):
    # Progress messages go to stderr, which the runner may mix into output
    return json.loads(output[output.index('['):])


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, cli_runner) -> None:
        result = cli_runner.invoke(main, ['--help'])
        assert result.exit_code == 0
        assert 'Satellite Pass Predictor' in result.output

    def test_log_level_passed_to_setup(self, cli_runner) -> None:
        with patch('pass_predictor.cli.setup_logging') as mock_setup:
            cli_runner.invoke(main, ['--log-level', 'DEBUG', 'passes', '--help'])
            mock_setup.assert_called_once_with('DEBUG', None)

    def test_bad_config_file(self, cli_runner, tmp_path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("no_such_option: 1\n")
        result = cli_runner.invoke(main, ['--config', str(config_file), 'passes', '--help'])
        assert result.exit_code != 0


class TestPassesCommand:
    """Tests for the passes command."""

    def test_passes_help(self, cli_runner) -> None:
        result = cli_runner.invoke(main, ['passes', '--help'])
        assert result.exit_code == 0
        assert '--swath-km' in result.output
        assert '--min-elevation' in result.output

    def test_missing_station(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(
            main, ['passes', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)']
        )
        assert result.exit_code != 0
        assert 'Missing option' in result.output

    def test_table_output(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            *MUNICH, '--start-time', START, '--duration', '24',
        ])
        assert result.exit_code == 0, result.output
        assert 'Passes of ISS (ZARYA)' in result.output
        assert 'Total passes:' in result.output

    def test_json_output(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            *MUNICH, '--start-time', START, '--duration', '24',
            '--min-elevation', '10', '--format', 'json',
        ])
        assert result.exit_code == 0, result.output
        data = _json_output(result.output)
        assert data
        assert all(p['max_elevation'] > 10 for p in data)
        assert all(p['satellite_name'] == 'ISS (ZARYA)' for p in data)

    def test_swath_json_output(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            *MUNICH, '--start-time', START, '--duration', '24',
            '--swath-km', '3000', '--format', 'json',
        ])
        assert result.exit_code == 0, result.output
        assert all(p['kind'] == 'swath' for p in _json_output(result.output))

    def test_geostationary_has_no_passes(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'GOES 16',
            *MUNICH, '--start-time', START, '--duration', '24',
        ])
        assert result.exit_code == 0
        assert 'No passes found' in result.output

    def test_unknown_satellite_exits_with_error(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'NOT-A-SAT', *MUNICH,
        ])
        assert result.exit_code == 1
        assert 'Error:' in result.output

    def test_invalid_start_time(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'passes', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            *MUNICH, '--start-time', 'yesterday-ish',
        ])
        assert result.exit_code == 1


class TestEclipsesCommand:
    """Tests for the eclipses command."""

    def test_table_output(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'eclipses', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            '--start-time', START, '--duration', '6',
        ])
        assert result.exit_code == 0, result.output
        assert 'Total transitions:' in result.output

    def test_json_output_alternates(self, cli_runner, iss_tle_file) -> None:
        result = cli_runner.invoke(main, [
            'eclipses', '--tle', str(iss_tle_file), '--satellite', 'ISS (ZARYA)',
            '--start-time', START, '--duration', '6', '--step', '60', '--format', 'json',
        ])
        assert result.exit_code == 0, result.output
        data = _json_output(result.output)
        for previous, current in zip(data, data[1:]):
            assert previous['time_ms'] < current['time_ms']
            assert previous['to_shadow'] != current['to_shadow']
