"""
Unit tests for the worker entrypoint and the requeue command.
"""

import signal
from unittest.mock import MagicMock, patch

import pytest

from export_worker import main as main_module
from export_worker import requeue


class TestMain:
    @pytest.mark.unit
    def test_exits_when_database_unreachable(self):
        with patch.object(main_module, "check_connection", side_effect=ConnectionError("refused")):
            with pytest.raises(SystemExit) as exc_info:
                main_module.main()

        assert exc_info.value.code == 1

    @pytest.mark.unit
    def test_runs_worker_and_stops_health_server(self):
        server = MagicMock()
        worker = MagicMock()

        with (
            patch.object(main_module, "check_connection"),
            patch.object(main_module, "JobQueue"),
            patch.object(main_module, "ExportProcessor"),
            patch.object(main_module, "ExportWorker", return_value=worker),
            patch.object(main_module, "JobPool") as pool_cls,
            patch.object(main_module, "start_health_server", return_value=server) as start_server,
            patch.object(main_module.signal, "signal") as register,
        ):
            main_module.main()

        worker.run.assert_called_once()
        start_server.assert_called_once_with(pool_cls.return_value)
        assert server.should_exit is True
        registered = {c.args[0] for c in register.call_args_list}
        assert registered == {signal.SIGTERM, signal.SIGINT}

    @pytest.mark.unit
    def test_signal_requests_shutdown(self):
        worker = MagicMock()

        main_module.signal_handler(worker, signal.SIGTERM, None)

        worker.request_shutdown.assert_called_once()


class TestRequeue:
    @pytest.mark.unit
    def test_passes_max_retries(self):
        with patch.object(requeue, "JobQueue") as queue_cls:
            queue_cls.return_value.requeue_failed.return_value = 2

            assert requeue.main(["--max-retries", "5"]) is None

        queue_cls.return_value.requeue_failed.assert_called_once_with(5)

    @pytest.mark.unit
    def test_defaults_to_configured_max_retries(self):
        with patch.object(requeue, "JobQueue") as queue_cls:
            requeue.main([])

        queue_cls.return_value.requeue_failed.assert_called_once_with(3)
