import pytest

from finance_tracker.categorizer import Classification, Classifier, compile_rules, match_rule


@pytest.fixture
def classifier():
    return Classifier()


@pytest.mark.parametrize(
    "detail, category, purpose",
    [
        ("UBER*TRIP", "Transport", "Need"),
        ("SUPERMERCADO NACIONAL", "Groceries", "Need"),
        ("Netflix.com", "Entertainment", "Want"),
        ("PAGO IMPUESTO DGII", "Fees", "Taxes"),
        ("TRANSFERENCIA A TERCEROS", None, None),
        ("", None, None),
    ],
)
def test_classify(classifier, detail, category, purpose):
    assert classifier.classify(detail) == Classification(category, purpose)


def test_first_matching_rule_wins():
    rules = compile_rules([("caf", "Coffee"), ("cafeteria", "Restaurants")])
    assert match_rule("CAFETERIA CENTRAL", rules) == "Coffee"


def test_rules_are_case_insensitive():
    rules = compile_rules([("uber", "Transport")])
    assert match_rule("Pago UBER eats", rules) == "Transport"
    assert match_rule("metro", rules) is None


def test_purpose_rule_beats_category_table(classifier):
    assert classifier.purpose_for("Deposito ahorro supermercado", "Groceries") == "Savings"


def test_purpose_from_category_is_case_insensitive():
    classifier = Classifier(purpose_by_category={"Groceries": "Need"})
    assert classifier.purpose_for("anything", "GROCERIES") == "Need"
    assert classifier.purpose_for("anything", "Other") is None
    assert classifier.purpose_for("anything") is None


def test_custom_rule_lists():
    classifier = Classifier(category_rules=[("gym", "Fitness")], purpose_rules=[], purpose_by_category={})
    assert classifier.classify("SMART GYM") == Classification("Fitness", None)
    assert classifier.classify("UBER") == Classification(None, None)
