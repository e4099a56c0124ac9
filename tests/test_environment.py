import subprocess
from unittest.mock import MagicMock, patch

from trainstats.samplers.environment import EnvironmentInfo
from trainstats.session import get_process_uid


def test_hostname_from_environment(monkeypatch):
    monkeypatch.setenv("COMPUTERNAME", "trainer-01")
    assert EnvironmentInfo().hostname() == "trainer-01"


def test_hostname_falls_back_to_socket(monkeypatch):
    monkeypatch.delenv("COMPUTERNAME", raising=False)
    monkeypatch.delenv("HOSTNAME", raising=False)
    with patch(
        "trainstats.samplers.environment.socket.gethostname", return_value="box"
    ):
        assert EnvironmentInfo().hostname() == "box"


def test_hostname_command_uses_timeout(monkeypatch):
    monkeypatch.delenv("COMPUTERNAME", raising=False)
    monkeypatch.delenv("HOSTNAME", raising=False)
    completed = MagicMock(returncode=0, stdout="node-7\n")
    with patch(
        "trainstats.samplers.environment.socket.gethostname", side_effect=OSError()
    ), patch(
        "trainstats.samplers.environment.subprocess.run", return_value=completed
    ) as run:
        assert EnvironmentInfo(hostname_timeout_sec=0.5).hostname() == "node-7"
    assert run.call_args.kwargs["timeout"] == 0.5


def test_hostname_failure_is_not_fatal(monkeypatch):
    monkeypatch.delenv("COMPUTERNAME", raising=False)
    monkeypatch.delenv("HOSTNAME", raising=False)
    env = EnvironmentInfo()
    env.logger = MagicMock()
    with patch(
        "trainstats.samplers.environment.socket.gethostname", return_value=""
    ), patch(
        "trainstats.samplers.environment.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="hostname", timeout=2.0),
    ):
        assert env.hostname() is None
        info = env.software_info()

    assert info.hostname is None
    env.logger.warning.assert_called()


def test_software_info_fields(monkeypatch):
    monkeypatch.setenv("COMPUTERNAME", "trainer-01")
    info = EnvironmentInfo().software_info()
    assert info.hostname == "trainer-01"
    assert info.backend.startswith("torch ")
    assert info.dtype.startswith("torch.")
    assert info.runtime_version.startswith(info.runtime_spec_version)
    assert info.process_uid == get_process_uid()
