from stagehand_automation.operations.service import ServiceEnabledMutation
from stagehand_automation.types import HostConfig


class FakeSystemCtl:
    def __init__(self, enabled: bool = False, active: bool = False):
        self.enabled = enabled
        self.active = active
        self.actions: list[str] = []

    def is_enabled(self, executor, service: str) -> bool:  # noqa: ARG002
        return self.enabled

    def is_active(self, executor, service: str) -> bool:  # noqa: ARG002
        return self.active

    def enable(self, executor, service: str) -> None:  # noqa: ARG002
        self.enabled = True
        self.actions.append("enable")

    def disable(self, executor, service: str) -> None:  # noqa: ARG002
        self.enabled = False
        self.actions.append("disable")

    def start(self, executor, service: str) -> None:  # noqa: ARG002
        self.active = True
        self.actions.append("start")

    def stop(self, executor, service: str) -> None:  # noqa: ARG002
        self.active = False
        self.actions.append("stop")

    def restart(self, executor, service: str) -> None:  # noqa: ARG002
        self.active = True
        self.actions.append("restart")


class DummyExecutor:
    def __init__(self):
        self.host = HostConfig(name="local")
        self.dry_run = False


def test_service_id_gets_unit_suffix():
    assert ServiceEnabledMutation("docker").id == "docker.service"
    assert ServiceEnabledMutation("apt-daily.timer").id == "apt-daily.timer"
    assert ServiceEnabledMutation("docker").fact(False) == "docker.service:disabled"


def test_enable_starts_inactive_service():
    mutation = ServiceEnabledMutation("docker")
    fake = FakeSystemCtl()
    mutation.systemctl = fake  # type: ignore[assignment]

    detail = mutation.apply(DummyExecutor())

    assert fake.actions == ["enable", "start"]
    assert detail == "enabled, started"
    assert mutation.probe(DummyExecutor()) is True


def test_enable_with_restart():
    mutation = ServiceEnabledMutation("unattended-upgrades", restart=True)
    fake = FakeSystemCtl(active=True)
    mutation.systemctl = fake  # type: ignore[assignment]

    mutation.apply(DummyExecutor())

    assert fake.actions == ["enable", "restart"]


def test_reverse_stops_then_disables():
    mutation = ServiceEnabledMutation("unattended-upgrades")
    fake = FakeSystemCtl(enabled=True, active=True)
    mutation.systemctl = fake  # type: ignore[assignment]

    detail = mutation.reverse(DummyExecutor())

    assert fake.actions == ["stop", "disable"]
    assert detail == "stopped, disabled"


def test_reverse_can_leave_service_running():
    mutation = ServiceEnabledMutation("docker", stop_on_reverse=False)
    fake = FakeSystemCtl(enabled=True, active=True)
    mutation.systemctl = fake  # type: ignore[assignment]

    mutation.reverse(DummyExecutor())

    assert fake.actions == ["disable"]
    assert fake.active is True
