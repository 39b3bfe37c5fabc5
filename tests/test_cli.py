import json
import zipfile

import pytest

from mmetl.cli import main

CHANNELS_DATA = """[
    {
        "id": "channel1",
        "name": "general",
        "creator": "user1",
        "members": ["user1", "user2", "user3"],
        "purpose": {"value": "Company wide announcements and work-based matters"},
        "topic": {"value": "Work matters"},
        "type": "O"
    },
    {
        "id": "channel2",
        "name": "random",
        "creator": "user2",
        "members": ["user1", "user2", "user3", "user4"],
        "purpose": {"value": "Non-work related chit-chat"},
        "topic": {"value": "Anything goes!"},
        "type": "O"
    }
]"""

USERS_DATA = """[
    {
        "id": "user1",
        "name": "JohnDoe",
        "is_bot": false,
        "profile": {
            "real_name": "John Doe",
            "email": "john.doe@example.com",
            "title": "Software Engineer"
        },
        "deleted": false
    },
    {
        "id": "user2",
        "name": "JaneSmith",
        "id_bot": false,
        "profile": {
            "real_name": "Jane Smith",
            "email":  "jane.smith@example.com",
            "title": "Product Manager"
        },
        "deleted": false
    }
]"""

POSTS_DATA = """[
    {
        "user": "user1",
        "text": "Hello, World!",
        "ts": "1577836800.000000",
        "type":      "message",
        "attachments": [
            {
            }
        }
    },
    {
        "user": "user2",
        "text": "Hello, user1!",
        "ts": "1577836801.000000",
        "type": "message",
        "attachments": [
            {
            }
        }
    }
]"""

EXPECTED_OUTPUT = (
    '{"type":"version","version":1}\n'
    '{"type":"channel","channel":{"team":"myteam","name":"general","display_name":"general",'
    '"type":"O","header":"Work matters","purpose":"Company wide announcements and work-based matters"}}\n'
    '{"type":"channel","channel":{"team":"myteam","name":"random","display_name":"random",'
    '"type":"O","header":"Anything goes!","purpose":"Non-work related chit-chat"}}\n'
    '{"type":"user","user":{"username":"JohnDoe","email":"john.doe@example.com",'
    '"auth_service":null,"nickname":"","first_name":"John","last_name":"Doe",'
    '"position":"Software Engineer","roles":"system_user","locale":null,'
    '"teams":[{"name":"myteam","roles":"team_user","channels":[{"name":"general",'
    '"roles":"channel_user"},{"name":"random","roles":"channel_user"}]}]}}\n'
    '{"type":"user","user":{"username":"JaneSmith","email":"jane.smith@example.com",'
    '"auth_service":null,"nickname":"","first_name":"Jane","last_name":"Smith",'
    '"position":"Product Manager","roles":"system_user","locale":null,'
    '"teams":[{"name":"myteam","roles":"team_user","channels":[{"name":"general",'
    '"roles":"channel_user"},{"name":"random","roles":"channel_user"}]}]}}\n'
)


def _make_zip(path, files):
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return path


def _default_zip(path):
    return _make_zip(
        path,
        {"channels.json": CHANNELS_DATA, "users.json": USERS_DATA, "posts.json": POSTS_DATA},
    )


def _log_messages(path):
    return [json.loads(line)["msg"] for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("USERS_JSON_FILE", raising=False)
    return tmp_path


def test_transform_slack_end_to_end(workdir):
    _default_zip(workdir / "test_input.zip")

    status = main(
        [
            "transform", "slack",
            "--team", "myteam",
            "--file", "test_input.zip",
            "--output", "test_output.txt",
        ]
    )

    assert status == 0
    assert (workdir / "test_output.txt").read_text(encoding="utf-8") == EXPECTED_OUTPUT
    assert (workdir / "data" / "bulk-export-attachments").is_dir()


def test_transform_writes_success_to_log(workdir):
    _default_zip(workdir / "in.zip")

    status = main(["transform", "slack", "-t", "myteam", "-f", "in.zip", "-o", "out.jsonl", "--debug"])

    assert status == 0
    messages = _log_messages(workdir / "transform-slack.log")
    assert messages[0] == "Debug mode enabled"
    assert messages[-1] == "Transformation succeeded!"
    first = json.loads((workdir / "transform-slack.log").read_text(encoding="utf-8").splitlines()[0])
    assert first["level"] == "info"
    assert first["file"].startswith("cli.py:")


def test_transform_skip_attachments_creates_no_directory(workdir):
    _default_zip(workdir / "in.zip")

    status = main(["transform", "slack", "-t", "myteam", "-f", "in.zip", "-o", "out.jsonl", "-a"])

    assert status == 0
    assert not (workdir / "data").exists()
    assert (workdir / "out.jsonl").read_text(encoding="utf-8") == EXPECTED_OUTPUT


def test_transform_output_is_directory(workdir, capsys):
    _default_zip(workdir / "in.zip")
    (workdir / "outdir").mkdir()

    status = main(["transform", "slack", "-t", "myteam", "-f", "in.zip", "-o", "outdir"])

    assert status == 1
    assert capsys.readouterr().out.strip() == 'Output file "outdir" is a directory'


def test_transform_attachments_path_is_a_file(workdir, capsys):
    _default_zip(workdir / "in.zip")
    (workdir / "att").mkdir()
    (workdir / "att" / "bulk-export-attachments").write_text("not a directory")

    status = main(
        ["transform", "slack", "-t", "myteam", "-f", "in.zip", "-o", "out.jsonl", "-d", "att"]
    )

    assert status == 1
    assert capsys.readouterr().out.strip() == 'File "att" is not a directory'


def test_transform_missing_input_file(workdir):
    status = main(["transform", "slack", "-t", "myteam", "-f", "missing.zip", "-a"])

    assert status == 1
    assert not (workdir / "bulk-export.jsonl").exists()


def test_transform_input_not_a_zip(workdir):
    (workdir / "bad.zip").write_text("plain text")

    status = main(["transform", "slack", "-t", "myteam", "-f", "bad.zip", "-a"])

    assert status == 1


def test_transform_requires_team(workdir):
    _default_zip(workdir / "in.zip")

    with pytest.raises(SystemExit) as excinfo:
        main(["transform", "slack", "-f", "in.zip"])

    assert excinfo.value.code == 2


USERS_WITHOUT_EMAIL = """[
    {"id": "user1", "name": "JohnDoe", "profile": {"real_name": "John Doe"}},
    {"id": "user2", "name": "JaneSmith", "profile": {"real_name": "Jane Smith"}}
]"""


def test_transform_missing_email_fails(workdir, capsys):
    _make_zip(workdir / "in.zip", {"channels.json": CHANNELS_DATA, "users.json": USERS_WITHOUT_EMAIL})

    status = main(["transform", "slack", "-t", "myteam", "-f", "in.zip", "-a"])

    assert status == 1
    assert "does not have an email address" in capsys.readouterr().out


def test_transform_default_email_domain(workdir):
    _make_zip(workdir / "in.zip", {"channels.json": CHANNELS_DATA, "users.json": USERS_WITHOUT_EMAIL})

    status = main(
        [
            "transform", "slack", "-t", "myteam", "-f", "in.zip", "-a",
            "-o", "out.jsonl", "--default-email-domain", "example.com",
        ]
    )

    assert status == 0
    lines = [json.loads(line) for line in (workdir / "out.jsonl").read_text().splitlines()]
    emails = [line["user"]["email"] for line in lines if line["type"] == "user"]
    assert emails == ["JohnDoe@example.com", "JaneSmith@example.com"]


def test_version_prints_version(capsys):
    assert main(["version"]) == 0
    assert capsys.readouterr().out == "mmetl 0.1.0 -- dev mode\n"


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: mmetl" in capsys.readouterr().out


def test_check_slack_precheck_failure_logs_errors(workdir):
    _default_zip(workdir / "in.zip")

    status = main(["check", "slack", "-f", "in.zip"])

    assert status == 0
    messages = _log_messages(workdir / "check-slack.log")
    assert messages[0] == "Debug mode enabled"
    assert (
        "Failed to find required file integration_logs.json in the correct location."
        in messages
    )
    assert "Checking intermediate resources" not in messages


def test_check_slack_runs_checks(workdir):
    post = json.dumps(
        [{"user": "user1", "text": "hello", "ts": "1577836800.000000", "type": "message"}]
    )
    _make_zip(
        workdir / "in.zip",
        {
            "channels.json": CHANNELS_DATA,
            "users.json": USERS_DATA,
            "integration_logs.json": "[]",
            "general/2020-01-01.json": post,
        },
    )

    status = main(["check", "slack", "-f", "in.zip", "--no-debug"])

    assert status == 0
    messages = _log_messages(workdir / "check-slack.log")
    assert "Checking intermediate resources" in messages
    assert "Debug mode enabled" not in messages


def test_check_slack_appends_to_log(workdir):
    _default_zip(workdir / "in.zip")

    statuses = [
        main(["check", "slack", "-f", "in.zip"]),
        main(["check", "slack", "-f", "in.zip"]),
    ]

    assert statuses == [0, 0]
    messages = _log_messages(workdir / "check-slack.log")
    assert messages.count("Debug mode enabled") == 2


def test_check_requires_file():
    with pytest.raises(SystemExit) as excinfo:
        main(["check", "slack"])

    assert excinfo.value.code == 2