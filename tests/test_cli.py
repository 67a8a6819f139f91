"""Tests for command line parsing and exit codes of run.py."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

import run
from storefinder.pipeline import RunResult


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Drop handlers that main() adds to the root logger."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)


@pytest.fixture
def cli_args(tmp_path):
    """Arguments isolating the run from the shipped config and log location."""
    return [
        '--config', str(tmp_path / 'absent.yaml'),
        '--log-file', str(tmp_path / 'logs' / 'run.log'),
        '--output-dir', str(tmp_path / 'out'),
    ]


class TestValidateUrl:
    """Tests for validate_url()."""

    def test_http_urls_accepted(self):
        assert run.validate_url('https://www.example.com/stores') == []
        assert run.validate_url('http://example.com') == []

    @pytest.mark.parametrize('url', ['example.com/stores', 'ftp://example.com', '', 'https://'])
    def test_invalid_urls_rejected(self, url):
        assert len(run.validate_url(url)) == 1


class TestParser:
    """Tests for setup_parser() and build_config()."""

    def test_flags_override_config(self, tmp_path):
        args = run.setup_parser().parse_args([
            'https://www.example.com', '--no-headless', '--batch-size', '25',
            '--use-llm-enhancement', '--save-html', '--config', str(tmp_path / 'absent.yaml'),
        ])

        with patch.dict('os.environ', {}, clear=True):
            config = run.build_config(args)

        assert config.headless is False
        assert config.batch_size == 25
        assert config.use_llm_enhancement is True
        assert config.save_html is True

    def test_unset_flags_keep_config_values(self, tmp_path):
        args = run.setup_parser().parse_args(['https://www.example.com', '--config', str(tmp_path / 'absent.yaml')])

        with patch.dict('os.environ', {'HEADLESS': 'false', 'BATCH_SIZE': '7'}, clear=True):
            config = run.build_config(args)

        assert config.headless is False
        assert config.batch_size == 7
        assert config.debug is False


class TestMain:
    """Tests for main() exit codes."""

    def test_invalid_url_exits_1(self, cli_args, capsys):
        with patch.object(run, 'StoreLocatorPipeline') as pipeline_cls:
            code = run.main(['not-a-url'] + cli_args)

        assert code == 1
        assert 'Invalid URL' in capsys.readouterr().out
        pipeline_cls.assert_not_called()

    def test_invalid_config_exits_1(self, cli_args, capsys):
        with patch.dict('os.environ', {'GRID_LAT_STEP': '-5'}, clear=True), \
             patch.object(run, 'StoreLocatorPipeline') as pipeline_cls:
            code = run.main(['https://www.example.com'] + cli_args)

        assert code == 1
        assert 'grid_lat_step' in capsys.readouterr().out
        pipeline_cls.assert_not_called()

    def test_malformed_config_exits_1(self, tmp_path, capsys):
        bad_config = tmp_path / 'bad.yaml'
        bad_config.write_text('scraper:\n  headless: [unclosed\n', encoding='utf-8')
        args = [
            'https://www.example.com', '--config', str(bad_config),
            '--log-file', str(tmp_path / 'logs' / 'run.log'),
        ]

        with patch.dict('os.environ', {}, clear=True), \
             patch.object(run, 'StoreLocatorPipeline') as pipeline_cls:
            code = run.main(args)

        assert code == 1
        assert 'Configuration error' in capsys.readouterr().out
        pipeline_cls.assert_not_called()

    def test_successful_run_exits_0(self, cli_args, capsys):
        result = RunResult(
            success=True, message='Found 2 stores', url='https://www.example.com',
            stats={'total': 2, 'by_source': {'json-ld': 2}, 'with_coordinates': 1},
            output_dir=Path('out/example.com_x'),
        )
        with patch.dict('os.environ', {}, clear=True), \
             patch.object(run, 'StoreLocatorPipeline') as pipeline_cls:
            pipeline_cls.return_value.run = AsyncMock(return_value=result)
            code = run.main(['https://www.example.com'] + cli_args)

        output = capsys.readouterr().out
        assert code == 0
        assert 'Found 2 stores' in output
        assert 'json-ld: 2' in output
        pipeline_cls.return_value.run.assert_awaited_once_with('https://www.example.com')

    def test_failed_run_exits_1(self, cli_args):
        result = RunResult(success=False, message='Failed to load', url='https://www.example.com')
        with patch.dict('os.environ', {}, clear=True), \
             patch.object(run, 'StoreLocatorPipeline') as pipeline_cls:
            pipeline_cls.return_value.run = AsyncMock(return_value=result)
            assert run.main(['https://www.example.com'] + cli_args) == 1

    def test_keyboard_interrupt_exits_130(self, cli_args):
        with patch.dict('os.environ', {}, clear=True), \
             patch.object(run, 'StoreLocatorPipeline'), \
             patch.object(run.asyncio, 'run', side_effect=KeyboardInterrupt):
            assert run.main(['https://www.example.com'] + cli_args) == 130
