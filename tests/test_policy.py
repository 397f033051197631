"""Unit tests for the policy model and route path normalisation."""

import pytest

from route_limits.domain.policy import Policy, coerce_policies, sanitize_path


@pytest.mark.parametrize(
    "by, expected",
    [
        (None, ["ip"]),
        ("user", ["user"]),
        (["user", "ip"], ["user", "ip"]),
        ([], ["ip"]),
        (42, ["ip"]),
        (["user", 3], ["ip"]),
    ],
)
def test_by_is_normalized(by, expected) -> None:
    data = {"limit": 1, "within": 1}
    if by is not None:
        data["by"] = by
    assert Policy.model_validate(data).by == expected


def test_exclude_tests_accepts_camel_case_alias() -> None:
    assert Policy.model_validate({"excludeTests": True}).exclude_tests is True
    assert Policy(exclude_tests=False).exclude_tests is False
    assert Policy().exclude_tests is None


@pytest.mark.parametrize(
    "limit, within, enforceable",
    [
        (5, 60, True),
        (0, 60, False),
        (5, 0, False),
        (None, 60, False),
        (5, None, False),
        (-1, 60, False),
    ],
)
def test_is_enforceable(limit, within, enforceable) -> None:
    assert Policy(limit=limit, within=within).is_enforceable is enforceable


def test_unknown_hook_is_rejected() -> None:
    with pytest.raises(ValueError):
        Policy.model_validate({"limit": 1, "within": 1, "hook": "whenever"})


def test_coerce_policies_accepts_single_mapping_and_lists() -> None:
    single = coerce_policies({"limit": 2, "within": 10})
    assert len(single) == 1 and single[0].limit == 2

    policy = Policy(limit=1, within=1)
    mixed = coerce_policies([policy, {"limit": 3, "within": 30, "by": "user"}])
    assert mixed[0] is policy
    assert mixed[1].by == ["user"]

    assert coerce_policies(None) == []


def test_sanitize_path_replaces_unsafe_characters() -> None:
    assert sanitize_path("/items/{item_id}") == "_items__item_id_"
    assert sanitize_path("a\\b:c?d") == "a_b_c_d"
    assert sanitize_path("_default_") == "_default_"
