from decimal import Decimal
from types import SimpleNamespace

from targets.normalizer import normalize, round_money, vat_breakdown


def _record(**kwargs):
    defaults = {"gross_total": None, "vat_amount": None, "vat_percent": None, "lines": None, "doc_number": "X"}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _line(quantity, price):
    return SimpleNamespace(quantity=Decimal(quantity), unit_price_excl_vat=Decimal(price))


def test_explicit_vat_amount_is_subtracted():
    assert normalize(_record(gross_total=Decimal("120"), vat_amount=Decimal("20"))) == Decimal("100")


def test_vat_amount_wins_over_vat_percent():
    record = _record(gross_total=Decimal("120"), vat_amount=Decimal("20"), vat_percent=Decimal("50"))
    assert normalize(record) == Decimal("100")


def test_vat_percent_used_when_no_vat_amount():
    assert normalize(_record(gross_total=Decimal("120"), vat_percent=Decimal("20"))) == Decimal("100")


def test_zero_vat_amount_falls_through_to_percent():
    record = _record(gross_total=Decimal("110"), vat_amount=Decimal("0"), vat_percent=Decimal("10"))
    assert normalize(record) == Decimal("100")


def test_lines_used_when_no_tax_metadata():
    record = _record(gross_total=Decimal("999"), lines=[_line("2", "50"), _line("1", "25")])
    assert normalize(record) == Decimal("125")


def test_empty_lines_fall_back_to_default_rate():
    assert normalize(_record(gross_total=Decimal("120"), lines=[])) == Decimal("100")


def test_default_rate_assumed_without_any_metadata():
    assert normalize(_record(gross_total=Decimal("120"))) == Decimal("100")


def test_default_rate_follows_settings(settings):
    settings.TARGET_DEFAULT_VAT_PERCENT = 10
    assert normalize(_record(gross_total=Decimal("110"))) == Decimal("100")


def test_missing_or_negative_gross_is_zero():
    assert normalize(_record()) == Decimal("0")
    assert normalize(_record(gross_total=Decimal("-50"), vat_amount=Decimal("10"))) == Decimal("0")


def test_result_never_negative():
    assert normalize(_record(gross_total=Decimal("10"), vat_amount=Decimal("15"))) == Decimal("0")


def test_string_amounts_are_accepted():
    assert normalize(_record(gross_total="120", vat_percent="20")) == Decimal("100")


def test_broken_lines_are_skipped_with_warning(caplog):
    record = _record(gross_total=Decimal("120"), lines=42)
    assert normalize(record) == Decimal("100")
    assert "_from_lines" in caplog.text


def test_vat_breakdown_rounds_for_display():
    net, vat = vat_breakdown(_record(gross_total=Decimal("100"), vat_percent=Decimal("19.25")))
    assert net == Decimal("83.86")
    assert vat == Decimal("16.14")


def test_round_money_half_up():
    assert round_money(Decimal("0.005")) == Decimal("0.01")
    assert round_money(Decimal("2.344")) == Decimal("2.34")
