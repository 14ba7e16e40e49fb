import pytest
from django.contrib.auth.models import Group
from django.core.management import call_command

from hc_core.common.permissions import ALL_ROLES

pytestmark = pytest.mark.django_db


def test_ensure_roles_is_idempotent(capsys):
    call_command("ensure_roles")
    assert f"Newly created: {len(ALL_ROLES)}" in capsys.readouterr().out

    call_command("ensure_roles")
    assert "Newly created: 0" in capsys.readouterr().out

    assert set(Group.objects.values_list("name", flat=True)) == ALL_ROLES
