"""Tests for deployment lifecycle rules."""
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from xuanwu.modules.deployments.errors import InvalidDeploymentUpdateError
from xuanwu.modules.deployments.lifecycle import apply_update, can_transition, is_ahead
from xuanwu.modules.deployments.schemas import DeploymentRecord, DeploymentStatus, DeploymentUpdate

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
IMAGE = "registry.test/team/app:1.0.0"


def make_record(**overrides) -> DeploymentRecord:
    values = {
        "id": uuid4(),
        "application_id": uuid4(),
        "version": "1.0.0",
        "status": DeploymentStatus.PENDING,
        "started_at": NOW,
    }
    values.update(overrides)
    return DeploymentRecord(**values)


class TestTransitions:
    """Test which status moves are allowed."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (DeploymentStatus.PENDING, DeploymentStatus.BUILDING),
            (DeploymentStatus.PENDING, DeploymentStatus.DEPLOYING),
            (DeploymentStatus.BUILDING, DeploymentStatus.DEPLOYING),
            (DeploymentStatus.DEPLOYING, DeploymentStatus.DEPLOYED),
            (DeploymentStatus.DEPLOYING, DeploymentStatus.ROLLED_BACK),
            (DeploymentStatus.BUILDING, DeploymentStatus.FAILED),
            (DeploymentStatus.BUILDING, DeploymentStatus.BUILDING),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (DeploymentStatus.DEPLOYING, DeploymentStatus.BUILDING),
            (DeploymentStatus.BUILDING, DeploymentStatus.PENDING),
            (DeploymentStatus.PENDING, DeploymentStatus.DEPLOYED),
            (DeploymentStatus.DEPLOYED, DeploymentStatus.FAILED),
            (DeploymentStatus.FAILED, DeploymentStatus.FAILED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)


class TestApplyUpdate:
    """Test applying partial updates to a record."""

    def test_moves_forward_and_appends_logs(self):
        record = make_record()

        building = apply_update(record, DeploymentUpdate(status=DeploymentStatus.BUILDING, build_logs="one"))
        appended = apply_update(building, DeploymentUpdate(build_logs="one\ntwo"))

        assert appended.status == DeploymentStatus.BUILDING
        assert appended.build_logs == "one\ntwo"
        assert record.status == DeploymentStatus.PENDING

    def test_unset_fields_are_kept(self):
        record = make_record(status=DeploymentStatus.BUILDING, build_logs="one")

        updated = apply_update(record, DeploymentUpdate(status=DeploymentStatus.DEPLOYING, image_url=IMAGE))

        assert updated.build_logs == "one"
        assert updated.image_url == IMAGE

    def test_rejects_backwards_move(self):
        record = make_record(status=DeploymentStatus.DEPLOYING, image_url=IMAGE)

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(status=DeploymentStatus.BUILDING))

    def test_rejects_changes_to_terminal_record(self):
        record = make_record(status=DeploymentStatus.FAILED, completed_at=NOW, deploy_logs="boom")

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(deploy_logs="boom\nmore"))

    def test_rejects_log_truncation(self):
        record = make_record(status=DeploymentStatus.BUILDING, build_logs="one\ntwo")

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(build_logs="one"))

    def test_terminal_status_requires_completed_at(self):
        record = make_record(status=DeploymentStatus.DEPLOYING, image_url=IMAGE)

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(status=DeploymentStatus.DEPLOYED))

    def test_completed_at_only_for_terminal_status(self):
        record = make_record(status=DeploymentStatus.BUILDING)

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(completed_at=NOW))

    def test_deploying_requires_image(self):
        record = make_record(status=DeploymentStatus.BUILDING)

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(status=DeploymentStatus.DEPLOYING))

    def test_building_cannot_carry_image(self):
        record = make_record()

        with pytest.raises(InvalidDeploymentUpdateError):
            apply_update(record, DeploymentUpdate(status=DeploymentStatus.BUILDING, image_url=IMAGE))

    def test_failed_keeps_reached_state(self):
        record = make_record(status=DeploymentStatus.BUILDING, build_logs="one")

        failed = apply_update(
            record,
            DeploymentUpdate(status=DeploymentStatus.FAILED, completed_at=NOW, deploy_logs="error"),
        )

        assert failed.is_terminal
        assert failed.image_url is None
        assert failed.build_logs == "one"


class TestIsAhead:
    """Test ordering of record snapshots."""

    def test_later_status_is_ahead(self):
        building = make_record(status=DeploymentStatus.BUILDING, build_logs="one\ntwo")
        deploying = building.model_copy(update={"status": DeploymentStatus.DEPLOYING, "image_url": IMAGE})

        assert is_ahead(deploying, building)
        assert not is_ahead(building, deploying)

    def test_longer_logs_are_ahead(self):
        first = make_record(status=DeploymentStatus.BUILDING, build_logs="one")
        second = first.model_copy(update={"build_logs": "one\ntwo"})

        assert is_ahead(second, first)
        assert not is_ahead(first, second)

    def test_same_snapshot_is_not_ahead(self):
        record = make_record(status=DeploymentStatus.BUILDING, build_logs="one")

        assert not is_ahead(record.model_copy(), record)

    def test_nothing_is_ahead_of_terminal_record(self):
        failed = make_record(status=DeploymentStatus.FAILED, completed_at=NOW, deploy_logs="error")
        deployed = failed.model_copy(update={"status": DeploymentStatus.DEPLOYED, "image_url": IMAGE})

        assert not is_ahead(deployed, failed)
