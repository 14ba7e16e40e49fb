import pytest
from django.core.management import call_command

from hc_core.authorizations.models import Authorization
from hc_core.authorizations.services import LedgerService

pytestmark = pytest.mark.django_db


def test_reconcile_repairs_drifted_counter(capsys, authorization, tenant_id, office_id):
    LedgerService.reserve(tenant_id=tenant_id, office_id=office_id, authorization_id=authorization.id, units=6)
    Authorization.objects.filter(pk=authorization.pk).update(used_units=9)

    call_command("reconcile_authorization_units")
    out = capsys.readouterr().out
    assert "used_units 9 -> 6" in out, out
    assert "repaired 1" in out

    call_command("reconcile_authorization_units")
    assert "repaired 0" in capsys.readouterr().out

    authorization.refresh_from_db()
    assert authorization.used_units == 6
