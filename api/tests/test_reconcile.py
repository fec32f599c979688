import logging

from fieldsign.engine.reconcile import ReconcileReport, reconcile_signer_bindings, unbind_signer
from conftest import make_field

SIGNER_A = 1
SIGNER_B = 2


def test_signature_bound_elsewhere_is_rebound_once():
    fields = [make_field(1, "signature", signer_id=SIGNER_A)]
    report = reconcile_signer_bindings(fields, SIGNER_B)
    assert report == ReconcileReport(unbound=0, rebound=1, relinked=0)
    assert fields[0].signer_id == SIGNER_B
    second = reconcile_signer_bindings(fields, SIGNER_B)
    assert not second
    assert fields[0].signer_id == SIGNER_B


def test_binding_rules_per_field_kind():
    fields = [
        make_field(1, "signature"),
        make_field(2, "initial", signer_id=99),
        make_field(3, "text", required=True),
        make_field(4, "text"),
        make_field(5, "date", signer_id=99),
        make_field(6, "checkbox", signer_id=SIGNER_B),
    ]
    report = reconcile_signer_bindings(fields, SIGNER_B)
    assert (report.unbound, report.rebound, report.relinked) == (2, 1, 1)
    assert [f.signer_id for f in fields] == [SIGNER_B, SIGNER_B, SIGNER_B, None, SIGNER_B, SIGNER_B]


def test_no_signer_is_a_no_op():
    fields = [make_field(1, "signature"), make_field(2, "text", signer_id=SIGNER_A)]
    assert reconcile_signer_bindings(fields, None).total == 0
    assert [f.signer_id for f in fields] == [None, SIGNER_A]


def test_corrections_are_logged(caplog):
    caplog.set_level(logging.INFO, logger="fieldsign.engine.reconcile")
    reconcile_signer_bindings([make_field(1, "signature")], SIGNER_A)
    assert "1 newly bound" in caplog.text
    caplog.clear()
    reconcile_signer_bindings([make_field(1, "signature", signer_id=SIGNER_A)], SIGNER_A)
    assert caplog.text == ""


def test_unbind_signer_clears_signature_fields_and_stale_references():
    fields = [
        make_field(1, "signature", signer_id=SIGNER_A),
        make_field(2, "initial", signer_id=SIGNER_A),
        make_field(3, "text", required=True, signer_id=SIGNER_A),
        make_field(4, "text"),
    ]
    changed = unbind_signer(fields, SIGNER_A)
    assert [f.id for f in changed] == [1, 2, 3]
    assert all(f.signer_id is None for f in fields)
    assert unbind_signer(fields, SIGNER_A) == []
