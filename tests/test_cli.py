"""
Tests for the command-line interface.
"""

import json
import os

import pytest

from conftest import make_manifest_data
from tool_gateway import cli
from tool_gateway.envelope import verify_envelope
from tool_gateway.progress import encode_payload


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("GATEWAY_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


@pytest.fixture
def manifest_path(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(make_manifest_data()))
    return path


class TestListTools:
    def test_prints_catalog(self, manifest_path, capsys):
        assert cli.main(["list-tools", "--manifest", str(manifest_path)]) == 0

        data = json.loads(capsys.readouterr().out)
        assert [t["name"] for t in data["tools"]][0] == "demo.echo"
        assert data["manifest"]["version"] == "2.3.0"

    def test_manifest_from_environment(self, manifest_path, monkeypatch, capsys):
        monkeypatch.setenv("GATEWAY_MANIFEST_PATH", str(manifest_path))

        assert cli.main(["list-tools"]) == 0
        assert json.loads(capsys.readouterr().out)["tools"]

    def test_no_manifest_is_config_error(self, capsys):
        assert cli.main(["list-tools"]) == cli.EXIT_CONFIG_ERROR
        assert "error:" in capsys.readouterr().err

    def test_bad_manifest(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text('{"tools": [{"id": "a"}, {"id": "a"}]}')

        assert cli.main(["list-tools", "--manifest", str(path)]) == cli.EXIT_CONFIG_ERROR
        assert "Duplicate" in capsys.readouterr().err


class TestSignEnvelope:
    def test_signs_verifiable_envelope(self, monkeypatch, capsys):
        monkeypatch.setenv("GATEWAY_ENVELOPE_SECRET", "cli-secret")

        code = cli.main(
            ["sign-envelope", "--initiator", "user:bob", "--roles", "ops, admin", "--trace-id", "trace-C"]
        )

        assert code == 0
        envelope = json.loads(capsys.readouterr().out)
        context = verify_envelope(envelope, "cli-secret")
        assert context.initiator_id == "user:bob"
        assert context.roles == frozenset({"ops", "admin"})
        assert context.trace_id == "trace-C"

    def test_requires_secret(self, capsys):
        assert cli.main(["sign-envelope", "--initiator", "user:bob"]) == cli.EXIT_CONFIG_ERROR
        assert "GATEWAY_ENVELOPE_SECRET" in capsys.readouterr().err


class TestProjectHistory:
    def test_projects_saved_history(self, tmp_path, capsys):
        history = {
            "events": [
                {
                    "eventId": "5",
                    "eventType": "EVENT_TYPE_ACTIVITY_TASK_SCHEDULED",
                    "activityTaskScheduledEventAttributes": {
                        "activityId": "5",
                        "activityType": {"name": "executeCapability"},
                        "input": {"payloads": [encode_payload({"capId": "cap.one"})]},
                    },
                },
                {
                    "eventId": "6",
                    "eventType": "EVENT_TYPE_ACTIVITY_TASK_STARTED",
                    "activityTaskStartedEventAttributes": {"scheduledEventId": "5"},
                },
            ]
        }
        path = tmp_path / "history.json"
        path.write_text(json.dumps(history))

        assert cli.main(["project-history", str(path)]) == 0
        assert json.loads(capsys.readouterr().out) == {
            "steps": [{"seq": 5, "activityId": "5", "capId": "cap.one", "status": "running"}]
        }

    def test_custom_activity_type(self, tmp_path, capsys):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"events": []}))

        assert cli.main(["project-history", str(path), "--activity-type", "runStep"]) == 0
        assert json.loads(capsys.readouterr().out) == {"steps": []}

    def test_unreadable_history(self, tmp_path, capsys):
        assert cli.main(["project-history", str(tmp_path / "missing.json")]) == 1
        assert "could not read history" in capsys.readouterr().err


class TestGlobalOptions:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])

        assert exc_info.value.code == 0
        assert "tool-gateway" in capsys.readouterr().out

    def test_invalid_config_file(self, tmp_path, capsys):
        path = tmp_path / "gateway.yaml"
        path.write_text("logging:\n  level: LOUD\n")

        assert cli.main(["--config", str(path), "list-tools"]) == cli.EXIT_CONFIG_ERROR
        assert "validation failed" in capsys.readouterr().err

    def test_env_file(self, tmp_path, monkeypatch, capsys, manifest_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text(f"GATEWAY_MANIFEST_PATH={manifest_path}\n")
        # Registered so the value dotenv sets is removed afterwards
        monkeypatch.setenv("GATEWAY_MANIFEST_PATH", "")
        monkeypatch.delenv("GATEWAY_MANIFEST_PATH")

        assert cli.main(["--env-file", str(env_file), "list-tools"]) == 0
