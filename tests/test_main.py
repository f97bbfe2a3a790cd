import importlib
import logging
from unittest.mock import Mock

import nofus.main as main_module


def test_import_does_not_configure_root_logger(monkeypatch):
    basic_config = Mock()
    monkeypatch.setattr(logging, "basicConfig", basic_config)

    importlib.reload(main_module)

    basic_config.assert_not_called()


def test_main_configures_logging_and_serves(monkeypatch):
    basic_config, run = Mock(), Mock()
    monkeypatch.setattr(logging, "basicConfig", basic_config)
    monkeypatch.setattr(main_module.uvicorn, "run", run)

    main_module.main()

    basic_config.assert_called_once()
    run.assert_called_once()
    assert run.call_args.args == (main_module.app,)
    assert run.call_args.kwargs["port"] == main_module.settings.PORT
