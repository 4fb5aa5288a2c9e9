import pytest

from invoice_review.entities import Entity, EntityClassifier
from invoice_review.output_handler import STATUS_REVIEWED
from invoice_review.postprocessor import (
    ConfidenceAggregator,
    FieldResolver,
    PostProcessor,
    ResolvedTotals,
    TotalsValidator,
    confidence_level,
    effective_text,
)

from conftest import SAMPLE_CONFIDENCE, entity


def make(*dicts):
    return [Entity.from_dict(d) for d in dicts]


def classify(*dicts):
    return EntityClassifier().classify(make(*dicts))


# -----------------------------------------------------------------------------
# Resolution
# -----------------------------------------------------------------------------

def test_exact_match_beats_earlier_fuzzy_match():
    candidates = make(
        entity("1", "invoice_total_amount", "$1"),
        entity("2", "TOTAL_AMOUNT", "$2"),
    )
    resolved = FieldResolver().resolve(candidates, "total_amount", [lambda t: "total_amount" in t])
    assert resolved.id == "2"


def test_first_candidate_matching_any_predicate_wins():
    candidates = make(
        entity("1", "grand_total", "$1"),
        entity("2", "net_total", "$2"),
        entity("3", "subtotal", "$3"),
    )
    resolved = FieldResolver().resolve(candidates, "net_amount", [lambda t: "subtotal" in t, lambda t: "net" in t])
    assert resolved.id == "2"


def test_resolve_nothing_matches():
    assert FieldResolver().resolve(make(entity("1", "currency", "USD")), "total_amount") is None


def test_totals_pool_across_pages():
    buckets = classify(
        entity("n", "net_amount", "$100", page=0),
        entity("t", "total_amount", "$120", page=2),
        entity("x", "total_tax_amount", "$20", page=1),
    )
    totals = FieldResolver().resolve_totals(buckets)
    assert (totals.total.id, totals.tax.id, totals.net.id) == ("t", "x", "n")


def test_totals_fuzzy_fallbacks():
    buckets = classify(
        entity("a", "amount_total", "$120"),
        entity("b", "vat_tax_total", "$20"),
        entity("c", "subtotal_amount", "$100"),
    )
    totals = FieldResolver().resolve_totals(buckets)
    assert (totals.total.id, totals.tax.id, totals.net.id) == ("a", "b", "c")


def test_header_fields_only_read_page_one():
    buckets = classify(
        entity("1", "supplier_name", "Acme", page=0),
        entity("2", "invoice_id", "INV-9", page=1),
    )
    resolver = FieldResolver()
    assert resolver.resolve_header(buckets, "supplier_name").id == "1"
    assert resolver.resolve_header(buckets, "invoice_number") is None


def test_header_fields_without_page_one():
    buckets = classify(entity("1", "supplier_name", "Acme", page=3))
    assert FieldResolver().resolve_header(buckets, "supplier_name") is None


def test_effective_text_prefers_override():
    e = make(entity("6", "total_amount", "$120.00"))[0]
    assert effective_text(e, {"6": "$99.00"}) == "$99.00"
    assert effective_text(e, {"6": ""}) == ""
    assert effective_text(e, {}) == "$120.00"
    assert effective_text(None, {"6": "x"}) is None


# -----------------------------------------------------------------------------
# Confidence
# -----------------------------------------------------------------------------

def test_aggregate_confidence(sample_entities):
    buckets = EntityClassifier().classify(sample_entities)
    assert ConfidenceAggregator().aggregate(buckets) == pytest.approx(SAMPLE_CONFIDENCE)


def test_aggregate_ignores_other_bucket():
    buckets = classify(entity("1", "currency", "USD", 0.1), entity("2", "total_amount", "$1", 0.8))
    assert ConfidenceAggregator().aggregate(buckets) == pytest.approx(0.8)


def test_aggregate_skips_empty_property_text():
    buckets = classify(entity("1", "line_item", "row", 0.6, properties=[
        entity("1a", "line_item/amount", "", 0.1, page=None),
        entity("1b", "line_item/description", "Pen", None, page=None),
    ]))
    assert ConfidenceAggregator().aggregate(buckets) == pytest.approx((0.6 + 0.5) / 2)


def test_aggregate_empty_document():
    assert ConfidenceAggregator().aggregate({}) == 0.0


@pytest.mark.parametrize("score, level", [(0.0, "low"), (0.49, "low"), (0.5, "medium"), (0.79, "medium"), (0.8, "high")])
def test_confidence_level(score, level):
    assert confidence_level(score) == level


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def totals(total="$120.00", tax="$20.00", net="$100.00"):
    t, x, n = make(
        entity("t", "total_amount", total),
        entity("x", "total_tax_amount", tax),
        entity("n", "net_amount", net),
    )
    return ResolvedTotals(total=t, tax=x, net=n)


def test_matching_totals_pass():
    assert TotalsValidator().validate(totals()) == {}


def test_difference_at_tolerance_passes():
    validator = TotalsValidator()
    assert validator.validate(totals(total="$0.01", tax="$0.00", net="$0.00")) == {}
    assert validator.validate(totals(total="$0.02", tax="$0.00", net="$0.00")) != {}


def test_mismatch_reports_every_slot():
    errors = TotalsValidator().validate(totals(total="$125.00"))
    assert errors == {
        "t": "Total amount (125.00) does not match Net Amount (100.00) + Tax Amount (20.00) = 120.00",
        "x": "Tax amount (20.00) does not match Total Amount (125.00) - Net Amount (100.00) = 25.00",
        "n": "Net amount (100.00) does not match Total Amount (125.00) - Tax Amount (20.00) = 105.00",
    }


def test_overrides_are_validated():
    validator = TotalsValidator()
    assert validator.validate(totals(), {"t": "$130.00"}).keys() == {"t", "x", "n"}
    assert validator.validate(totals(total="$125.00"), {"t": "120"}) == {}


def test_unresolved_slots_are_skipped():
    t = make(entity("t", "total_amount", "$50.00"))[0]
    errors = TotalsValidator().validate(ResolvedTotals(total=t))
    assert list(errors) == ["t"]
    assert errors["t"].endswith("= 0.00")


def test_no_totals_at_all_pass():
    assert TotalsValidator().validate(ResolvedTotals()) == {}


# -----------------------------------------------------------------------------
# Draft assembly
# -----------------------------------------------------------------------------

def test_build_draft(sample_entities):
    buckets = EntityClassifier().classify(sample_entities)
    draft = PostProcessor().build_draft(
        buckets,
        overrides={"2": "INV-2002", "9_amount": "$90.00"},
        status=STATUS_REVIEWED,
        document_url="local://invoices/documents/a.pdf",
    )
    invoice = draft.invoice

    assert invoice.invoice_number == "INV-2002"
    assert invoice.supplier_name == "Acme Corp"
    assert invoice.supplier_address == "1 Main St"
    assert invoice.receiver_name == "Globex"
    assert invoice.receiver_address is None
    assert invoice.invoice_date == "2024-03-04"
    assert invoice.due_date == "2024-04-04"
    assert (invoice.total_amount, invoice.tax_amount, invoice.net_amount) == (120.0, 20.0, 100.0)
    assert invoice.confidence_score == pytest.approx(SAMPLE_CONFIDENCE)
    assert invoice.status == STATUS_REVIEWED
    assert invoice.document_url == "local://invoices/documents/a.pdf"

    [item] = draft.line_items
    assert (item.description, item.quantity, item.unit_price, item.amount) == ("Widget", 2.0, 50.0, 90.0)
    assert item.line_number == 1


def test_build_draft_applies_fallbacks_only_when_empty(sample_entities):
    buckets = EntityClassifier().classify(sample_entities)
    draft = PostProcessor().build_draft(
        buckets, fallbacks={"invoice_number": "scan", "receiver_address": "Unknown"}
    )
    assert draft.invoice.invoice_number == "INV-1001"
    assert draft.invoice.receiver_address == "Unknown"


def test_unparseable_override_date_is_dropped(sample_entities):
    buckets = EntityClassifier().classify(sample_entities)
    header = PostProcessor().header_values(buckets, {"3": "sometime"})
    assert header["invoice_date"] is None
