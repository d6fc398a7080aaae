from arteligibility.eligibility_logic.precedence import resolve_precedence

from conftest import dt

ENROLLED = dt("2020-01-01")


def test_absent_treatment_start_resolves_to_none():
    assert resolve_precedence(None, None, None, ENROLLED, 6) is None
    assert resolve_precedence(None, dt("2020-02-01"), dt("2020-02-01"), ENROLLED, 6) is None


def test_no_criterion_dates_inside_window():
    art = dt("2020-03-01")
    assert resolve_precedence(art, None, None, ENROLLED, 6) == art


def test_no_criterion_dates_outside_window():
    assert resolve_precedence(dt("2020-07-02"), None, None, ENROLLED, 6) is None


def test_who_only():
    assert resolve_precedence(dt("2020-02-01"), None, dt("2020-03-01"), ENROLLED, 6) == dt("2020-02-01")
    assert resolve_precedence(dt("2020-03-01"), None, dt("2020-03-01"), ENROLLED, 6) is None
    assert resolve_precedence(dt("2020-04-01"), None, dt("2020-03-01"), ENROLLED, 6) is None


def test_cd4_only():
    assert resolve_precedence(dt("2020-02-01"), dt("2020-03-01"), None, ENROLLED, 6) == dt("2020-02-01")
    assert resolve_precedence(dt("2020-03-05"), dt("2020-03-01"), None, ENROLLED, 6) is None


def test_single_date_rules_check_upper_bound():
    # criterion date beyond the window cannot come from the filter, but the
    # upper bound is still part of the rule
    art = dt("2020-08-01")
    assert resolve_precedence(art, None, dt("2020-09-01"), ENROLLED, 6) is None
    assert resolve_precedence(art, dt("2020-09-01"), None, ENROLLED, 6) is None


def test_both_dates_requires_before_both():
    cd4_d, who_d = dt("2020-03-01"), dt("2020-04-01")
    assert resolve_precedence(dt("2020-02-01"), cd4_d, who_d, ENROLLED, 6) == dt("2020-02-01")
    assert resolve_precedence(dt("2020-03-15"), cd4_d, who_d, ENROLLED, 6) is None
    assert resolve_precedence(dt("2020-03-01"), cd4_d, who_d, ENROLLED, 6) is None


def test_both_dates_does_not_recheck_upper_bound():
    art = dt("2020-08-01")
    assert resolve_precedence(art, dt("2020-09-01"), dt("2020-10-01"), ENROLLED, 6) == art
