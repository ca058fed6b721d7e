"""Tests for core infrastructure modules."""

from unittest.mock import patch, MagicMock
import json
import logging
import stat
import threading
import pytest
from pydantic import ValidationError

from hcmachine.base.config import (
    HETZNER_FLAGS,
    HetznerConfig,
    config_from_flags,
    validate_config,
)
from hcmachine.base.driver import MachineDriverBlueprint, _is_ipv6
from hcmachine.base.exceptions import (
    ConfigurationError,
    CredentialError,
    MachineDriverError,
    WaitCancelledError,
    WaitTimeoutError,
)
from hcmachine.base.logger import MachineLogger, StructuredFormatter
from hcmachine.base.ssh import generate_ssh_key, read_public_key
from hcmachine.base.state import MachineState
from hcmachine.base.store import DriverRecord, MachineStore
from hcmachine.base.waiter import Waiter


_ENV_VARS = (
    "HETZNER_ACCESS_TOKEN",
    "HETZNER_IMAGE",
    "HETZNER_LOCATION",
    "HETZNER_SERVER_TYPE",
    "HCMACHINE_STORAGE_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# ══════════════════════════════════════════════════════════════════════
# Config
# ══════════════════════════════════════════════════════════════════════

class TestHetznerConfig:
    def test_explicit_values(self):
        cfg = HetznerConfig(
            access_token="tok",
            image="ubuntu-24.04",
            location="nbg1",
            server_type="cx22",
        )
        assert cfg.access_token == "tok"
        assert cfg.image == "ubuntu-24.04"
        assert cfg.location == "nbg1"
        assert cfg.server_type == "cx22"

    def test_defaults(self):
        cfg = HetznerConfig(access_token="tok")
        assert cfg.image == "debian-9"
        assert cfg.location == "fsn1"
        assert cfg.server_type == "cx11"
        assert cfg.poll_interval == 1.0
        assert cfg.create_timeout is None
        assert cfg.action_timeout is None
        assert cfg.cleanup_on_failure is False
        assert cfg.ssh_user == "root"
        assert cfg.ssh_port == 22

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("HETZNER_ACCESS_TOKEN", "env_tok")
        monkeypatch.setenv("HETZNER_IMAGE", "debian-12")
        monkeypatch.setenv("HETZNER_LOCATION", "hel1")
        monkeypatch.setenv("HETZNER_SERVER_TYPE", "cpx11")
        cfg = HetznerConfig()
        assert cfg.access_token == "env_tok"
        assert cfg.image == "debian-12"
        assert cfg.location == "hel1"
        assert cfg.server_type == "cpx11"

    def test_explicit_beats_env(self, monkeypatch):
        monkeypatch.setenv("HETZNER_IMAGE", "debian-12")
        cfg = HetznerConfig(access_token="tok", image="ubuntu-22.04")
        assert cfg.image == "ubuntu-22.04"

    def test_empty_value_uses_default(self):
        cfg = HetznerConfig(access_token="tok", image="")
        assert cfg.image == "debian-9"

    def test_missing_token(self):
        with pytest.raises(ValidationError, match="access-token"):
            HetznerConfig()

    def test_blank_token(self):
        with pytest.raises(ValidationError):
            HetznerConfig(access_token="   ")

    def test_frozen(self):
        cfg = HetznerConfig(access_token="tok")
        with pytest.raises(ValidationError):
            cfg.image = "other"

    def test_rejects_unknown_option(self):
        with pytest.raises(ValidationError):
            HetznerConfig(access_token="tok", region="fsn1")

    def test_store_path_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        cfg = HetznerConfig(access_token="tok", store_path="~/machines")
        assert cfg.resolved_store_path == tmp_path / "machines"


class TestValidateConfig:
    def test_hetzner(self):
        cfg = validate_config("hetzner", {"access_token": "tok"})
        assert isinstance(cfg, HetznerConfig)
        assert cfg.access_token == "tok"

    def test_missing_token_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid hetzner configuration"):
            validate_config("hetzner", {})

    def test_unknown_driver(self):
        with pytest.raises(ValueError, match="No config model"):
            validate_config("digitalocean", {"access_token": "tok"})


class TestFlags:
    def test_flag_names_and_env_vars(self):
        pairs = {(f.name, f.env_var) for f in HETZNER_FLAGS}
        assert pairs == {
            ("hetzner-access-token", "HETZNER_ACCESS_TOKEN"),
            ("hetzner-image", "HETZNER_IMAGE"),
            ("hetzner-location", "HETZNER_LOCATION"),
            ("hetzner-server-type", "HETZNER_SERVER_TYPE"),
        }

    def test_token_flag_has_no_default(self):
        token_flag = next(f for f in HETZNER_FLAGS if f.name == "hetzner-access-token")
        assert token_flag.default is None

    def test_from_flags(self):
        cfg = config_from_flags("hetzner", {
            "hetzner-access-token": "tok",
            "hetzner-image": "ubuntu-24.04",
        })
        assert cfg.access_token == "tok"
        assert cfg.image == "ubuntu-24.04"
        assert cfg.location == "fsn1"

    def test_from_flags_keeps_base_tuning(self):
        base = HetznerConfig(access_token="old", poll_interval=0.5, image="debian-12")
        cfg = config_from_flags("hetzner", {"hetzner-access-token": "new"}, base=base)
        assert cfg.access_token == "new"
        assert cfg.poll_interval == 0.5
        # flag-backed options are reset to env/defaults when the flag is absent
        assert cfg.image == "debian-9"

    def test_from_flags_without_token(self):
        with pytest.raises(ConfigurationError):
            config_from_flags("hetzner", {"hetzner-image": "debian-12"})

    def test_from_flags_unknown_driver(self):
        with pytest.raises(ValueError, match="No flags registered"):
            config_from_flags("aws", {})


# ══════════════════════════════════════════════════════════════════════
# Waiter
# ══════════════════════════════════════════════════════════════════════

class TestWaiter:
    def test_done_on_first_poll(self):
        fetch = MagicMock(return_value="success")
        result = Waiter(interval=0).poll(fetch, lambda v: v == "success")
        assert result == "success"
        fetch.assert_called_once()

    def test_polls_until_done(self):
        fetch = MagicMock(side_effect=["running", "running", "success"])
        result = Waiter(interval=0).poll(fetch, lambda v: v == "success")
        assert result == "success"
        assert fetch.call_count == 3

    def test_fetch_error_aborts(self):
        fetch = MagicMock(side_effect=["running", RuntimeError("boom"), "success"])
        with pytest.raises(RuntimeError, match="boom"):
            Waiter(interval=0).poll(fetch, lambda v: v == "success")
        assert fetch.call_count == 2

    def test_timeout(self):
        clock = iter([0.0, 1.0, 2.0, 10.0]).__next__
        fetch = MagicMock(return_value="running")
        waiter = Waiter(interval=0, timeout=5, clock=clock)
        with pytest.raises(WaitTimeoutError, match="Timed out"):
            waiter.poll(fetch, lambda v: v == "success", description="action 1")
        assert fetch.call_count == 3

    def test_no_timeout_by_default(self):
        assert Waiter().timeout is None

    def test_cancelled_before_start(self):
        event = threading.Event()
        event.set()
        fetch = MagicMock()
        with pytest.raises(WaitCancelledError):
            Waiter(interval=0, cancel_event=event).poll(fetch, lambda v: True)
        fetch.assert_not_called()

    def test_cancelled_while_waiting(self):
        waiter = Waiter(interval=0)

        def fetch():
            waiter.cancel()
            return "running"

        with pytest.raises(WaitCancelledError):
            waiter.poll(fetch, lambda v: v == "success")
        assert waiter.cancelled

    def test_sleeps_fixed_interval(self):
        event = MagicMock()
        event.is_set.return_value = False
        event.wait.return_value = False
        fetch = MagicMock(side_effect=["a", "b", "done"])
        Waiter(interval=1.0, cancel_event=event).poll(fetch, lambda v: v == "done")
        assert [c.args for c in event.wait.call_args_list] == [(1.0,), (1.0,)]


# ══════════════════════════════════════════════════════════════════════
# Store
# ══════════════════════════════════════════════════════════════════════

class TestMachineStore:
    def test_paths(self, tmp_path):
        store = MachineStore(tmp_path)
        assert store.machine_dir("web") == tmp_path / "machines" / "web"
        assert store.ssh_key_path("web") == tmp_path / "machines" / "web" / "id_rsa"
        assert store.record_path("web").name == "config.json"

    def test_save_and_load(self, tmp_path):
        store = MachineStore(tmp_path)
        record = DriverRecord(
            driver_name="hetzner",
            machine_name="web",
            config={"access_token": "tok"},
            server_id=42,
            ssh_key_id=7,
            ip_address="203.0.113.7",
        )
        path = store.save(record)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert store.exists("web")
        assert store.load("web") == record

    def test_load_missing(self, tmp_path):
        with pytest.raises(MachineDriverError, match="does not exist"):
            MachineStore(tmp_path).load("ghost")

    def test_load_corrupt(self, tmp_path):
        store = MachineStore(tmp_path)
        store.machine_dir("web").mkdir(parents=True)
        store.record_path("web").write_text("{not json")
        with pytest.raises(MachineDriverError, match="Corrupt"):
            store.load("web")

    def test_load_wrong_shape(self, tmp_path):
        store = MachineStore(tmp_path)
        store.machine_dir("web").mkdir(parents=True)
        store.record_path("web").write_text(json.dumps({"server_id": 1}))
        with pytest.raises(MachineDriverError, match="Corrupt"):
            store.load("web")

    @pytest.mark.parametrize("name", ["", "..", "a/b"])
    def test_invalid_name(self, tmp_path, name):
        with pytest.raises(MachineDriverError, match="Invalid machine name"):
            MachineStore(tmp_path).machine_dir(name)


# ══════════════════════════════════════════════════════════════════════
# SSH keys
# ══════════════════════════════════════════════════════════════════════

def _fake_keygen(args, **kwargs):
    path = args[args.index("-f") + 1]
    with open(path, "w") as fh:
        fh.write("PRIVATE")
    with open(path + ".pub", "w") as fh:
        fh.write("ssh-rsa AAAAB3Nza hcmachine@web\n")
    return MagicMock(returncode=0, stderr="")


class TestGenerateSSHKey:
    def test_generates_pair(self, tmp_path):
        key = tmp_path / "machines" / "web" / "id_rsa"
        with (
            patch("hcmachine.base.ssh.shutil.which", return_value="/usr/bin/ssh-keygen"),
            patch("hcmachine.base.ssh.subprocess.run", side_effect=_fake_keygen) as run,
        ):
            pub = generate_ssh_key(key)
        assert pub == tmp_path / "machines" / "web" / "id_rsa.pub"
        args = run.call_args[0][0]
        assert args[:5] == ["ssh-keygen", "-t", "rsa", "-b", "2048"]
        assert stat.S_IMODE(key.stat().st_mode) == 0o600
        assert read_public_key(key) == "ssh-rsa AAAAB3Nza hcmachine@web"

    def test_reuses_existing_pair(self, tmp_path):
        key = tmp_path / "id_rsa"
        key.write_text("PRIVATE")
        (tmp_path / "id_rsa.pub").write_text("ssh-rsa EXISTING")
        with patch("hcmachine.base.ssh.subprocess.run") as run:
            generate_ssh_key(key)
        run.assert_not_called()

    def test_keygen_failure(self, tmp_path):
        with (
            patch("hcmachine.base.ssh.shutil.which", return_value="/usr/bin/ssh-keygen"),
            patch(
                "hcmachine.base.ssh.subprocess.run",
                return_value=MagicMock(returncode=1, stderr="disk full"),
            ),
        ):
            with pytest.raises(CredentialError, match="disk full"):
                generate_ssh_key(tmp_path / "id_rsa")

    def test_keygen_missing(self, tmp_path):
        with patch("hcmachine.base.ssh.shutil.which", return_value=None):
            with pytest.raises(CredentialError, match="ssh-keygen not found"):
                generate_ssh_key(tmp_path / "id_rsa")

    def test_read_missing_public_key(self, tmp_path):
        with pytest.raises(CredentialError):
            read_public_key(tmp_path / "id_rsa")


# ══════════════════════════════════════════════════════════════════════
# Logger
# ══════════════════════════════════════════════════════════════════════

class TestMachineLogger:
    def test_log_operation(self, capfd):
        logger = MachineLogger("test_hm")
        logger.logger.setLevel(logging.DEBUG)
        logger.info("server ready", provider="hetzner", machine="web", operation="create")
        captured = capfd.readouterr()
        assert "server ready" in captured.err
        assert "hetzner" in captured.err

    def test_bound_context(self, capfd):
        logger = MachineLogger("test_hm_bound")
        logger.bind(provider="hetzner", machine="web").warning("slow", operation="start")
        entry = json.loads(capfd.readouterr().err.strip().splitlines()[-1])
        assert entry["machine"] == "web"
        assert entry["operation"] == "start"
        assert entry["level"] == "WARNING"

    def test_bound_request_id_is_stable(self, capfd):
        logger = MachineLogger("test_hm_request")
        bound = logger.bind(provider="hetzner", machine="web")
        bound.info("one", operation="create")
        bound.bind(operation="create").info("two")
        lines = capfd.readouterr().err.strip().splitlines()[-2:]
        ids = {json.loads(line)["request_id"] for line in lines}
        assert ids == {bound.request_id}

    def test_separate_binds_get_separate_ids(self):
        logger = MachineLogger("test_hm_request_ids")
        assert logger.bind().request_id != logger.bind().request_id

    def test_structured_formatter(self):
        fmt = StructuredFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="", lineno=0,
            msg="hi", args=(), exc_info=None,
        )
        record.machine = "web"
        record.request_id = "abc"
        output = fmt.format(record)
        assert '"machine": "web"' in output
        assert '"request_id": "abc"' in output


# ══════════════════════════════════════════════════════════════════════
# State and blueprint helpers
# ══════════════════════════════════════════════════════════════════════

class TestMachineState:
    def test_docker_machine_names(self):
        assert str(MachineState.RUNNING) == "Running"
        assert str(MachineState.STOPPED) == "Stopped"
        assert str(MachineState.STARTING) == "Starting"
        assert str(MachineState.ERROR) == "Error"
        assert MachineState.NONE.value == ""


class TestBlueprint:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            MachineDriverBlueprint("web", MachineStore("/tmp"))

    def test_ipv6_detection(self):
        assert _is_ipv6("2001:db8::1")
        assert not _is_ipv6("203.0.113.7")
        assert not _is_ipv6("example.com")
