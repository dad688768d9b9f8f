"""Tests for VM and snapshot name templates."""

import sys
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from vcon.utils import naming
from vcon.utils.naming import NameGenerator, TemplateError, format_joda

MOMENT = datetime(2024, 3, 5, 14, 7, 9, 123000)


@pytest.fixture
def generator(monkeypatch):
    monkeypatch.setattr(naming, "_display_name", lambda: "")
    monkeypatch.setattr(naming.getpass, "getuser", lambda: "jdoe@corp.example")
    return NameGenerator(vsphere_username="admin@vsphere.local", clock=lambda: MOMENT)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class TestFormatJoda:
    @pytest.mark.parametrize(
        ("pattern", "expected"),
        [
            ("YYYY-MM-dd hh:mm:ss", "2024-03-05 02:07:09"),
            ("yyyy-MM-dd HH:mm", "2024-03-05 14:07"),
            ("yy/M/d", "24/3/5"),
            ("MMM d, yyyy h a", "Mar 5, 2024 2 PM"),
            ("EEEE", "Tuesday"),
            ("HH:mm:ss.SSS", "14:07:09.123"),
            ("yyyy'T'HH", "2024T14"),
        ],
    )
    def test_patterns(self, pattern, expected):
        assert format_joda(MOMENT, pattern) == expected


class TestNameGenerator:
    def test_default_vm_name(self, generator):
        assert generator.vm_name() == "jdoe - 2024-03-05 02:07:09"

    def test_default_snapshot_name(self, generator):
        assert generator.snapshot_name("") == "Snapshot - jdoe - 2024-03-05 02:07:09"

    def test_literal_name_unchanged(self, generator):
        assert generator.vm_name("build-agent-7") == "build-agent-7"

    def test_now_with_format(self, generator):
        assert generator.render('ci-{{ Now "yyyyMMdd" }}') == "ci-20240305"

    def test_utc_now(self, monkeypatch):
        local = MOMENT.replace(tzinfo=timezone(timedelta(hours=2)))
        generator = NameGenerator(clock=lambda: local)
        assert generator.render('{{ UtcNow "HH:mm" }}') == "12:07"

    def test_env(self, generator, monkeypatch):
        monkeypatch.setenv("BUILD_NUMBER", "42")
        monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
        assert generator.render('b{{ Env "BUILD_NUMBER" }}{{ Env "NOT_SET_ANYWHERE" }}') == "b42"

    def test_vsphere_username_drops_domain(self, generator):
        assert generator.render("{{ VsUsername }}") == "admin"

    def test_unknown_user(self, monkeypatch):
        def fail():
            raise OSError("no user")

        monkeypatch.setattr(naming, "_display_name", lambda: "")
        monkeypatch.setattr(naming.getpass, "getuser", fail)
        assert naming.current_username() == naming.UNKNOWN_USER

    @pytest.mark.skipif(sys.platform == "win32", reason="no password database")
    def test_username_prefers_display_name(self, monkeypatch):
        monkeypatch.setattr(
            "pwd.getpwuid", lambda uid: SimpleNamespace(pw_gecos="Jane Doe,Room 4,555-0100,")
        )
        monkeypatch.setattr(naming.getpass, "getuser", lambda: "jdoe")
        assert naming.current_username() == "Jane Doe"

    @pytest.mark.skipif(sys.platform == "win32", reason="no password database")
    def test_username_falls_back_to_login_name(self, monkeypatch):
        monkeypatch.setattr("pwd.getpwuid", lambda uid: SimpleNamespace(pw_gecos=""))
        monkeypatch.setattr(naming.getpass, "getuser", lambda: "jdoe@corp.example")
        assert naming.current_username() == "jdoe"

    def test_unknown_function_is_an_error(self, generator):
        with pytest.raises(TemplateError):
            generator.render("{{ Hostname }}")

    @pytest.mark.parametrize("template", ["{{ Hostname }}", "{{ Now", '{{ Env "unterminated }}'])
    def test_broken_template_falls_back_to_uuid(self, generator, template):
        assert _is_uuid(generator.vm_name(template))
