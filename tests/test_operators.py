"""Tests for update operators, using the MongoDB manual examples."""

from datetime import datetime, timezone

import pytest

from querystate.errors import InvalidUpdateError
from querystate.operators import OPERATORS, UpdateOperator, apply_update_expression, parse_update

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _apply(state, expr, array_filters=None, condition=None):
    return apply_update_expression(state, expr, array_filters, condition, clock=lambda: NOW)


def test_every_operator_implemented():
    assert set(OPERATORS) == set(UpdateOperator)


class TestSet:
    def test_top_level_fields(self):
        state = {
            "_id": 100,
            "quantity": 250,
            "instock": True,
            "details": {"model": "14QQ", "make": "Clothes Corp"},
            "tags": ["apparel", "clothing"],
        }
        fields = _apply(state, {"$set": {
            "quantity": 500,
            "details": {"model": "2600", "make": "Fashionaires"},
            "tags": ["coats", "outerwear", "clothing"],
        }})
        assert fields == ["details", "quantity", "tags"]
        assert state == {
            "_id": 100,
            "quantity": 500,
            "instock": True,
            "details": {"model": "2600", "make": "Fashionaires"},
            "tags": ["coats", "outerwear", "clothing"],
        }

    def test_embedded_documents(self):
        state = {"details": {"model": "2600", "make": "Fashionaires"}}
        assert _apply(state, {"$set": {"details.make": "Kustom Kidz"}}) == ["details.make"]
        assert state == {"details": {"model": "2600", "make": "Kustom Kidz"}}

    def test_elements_in_arrays(self):
        state = {"tags": ["coats", "outerwear", "clothing"], "ratings": [{"by": "Customer007", "rating": 4}]}
        fields = _apply(state, {"$set": {"tags.1": "rain gear", "ratings.0.rating": 2}})
        assert fields == ["ratings.0.rating", "tags.1"]
        assert state == {"tags": ["coats", "rain gear", "clothing"], "ratings": [{"by": "Customer007", "rating": 2}]}

    def test_creates_missing_parents(self):
        state = {}
        assert _apply(state, {"$set": {"a.b.c": 1}}) == ["a.b.c"]
        assert state == {"a": {"b": {"c": 1}}}

    def test_same_value_is_no_op(self):
        state = {"a": {"b": 1}}
        assert _apply(state, {"$set": {"a": {"b": 1}}}) == []

    def test_value_is_copied(self):
        value = {"b": [1]}
        state = {}
        _apply(state, {"$set": {"a": value}})
        value["b"].append(2)
        assert state == {"a": {"b": [1]}}

    @pytest.mark.parametrize("state, expected, changed", [
        ({"grades": [95, 92, 90]}, [95, 92, 90], []),
        ({"grades": [98, 100, 102]}, [98, 100, 100], ["grades"]),
        ({"grades": [95, 110, 100]}, [95, 100, 100], ["grades"]),
    ])
    def test_array_filters(self, state, expected, changed):
        fields = _apply(state, {"$set": {"grades.$[element]": 100}}, [{"element": {"$gte": 100}}])
        assert fields == changed
        assert state["grades"] == expected

    def test_array_filters_on_documents(self):
        state = {"grades": [
            {"grade": 80, "mean": 75, "std": 6},
            {"grade": 85, "mean": 90, "std": 4},
            {"grade": 85, "mean": 85, "std": 6},
        ]}
        _apply(state, {"$set": {"grades.$[elem].mean": 100}}, [{"elem.grade": {"$gte": 85}}])
        assert state == {"grades": [
            {"grade": 80, "mean": 75, "std": 6},
            {"grade": 85, "mean": 100, "std": 4},
            {"grade": 85, "mean": 100, "std": 6},
        ]}

    def test_array_filters_with_negation(self):
        state = {"degrees": [{"level": "Master"}, {"level": "Bachelor"}]}
        _apply(state, {"$set": {"degrees.$[degree].gradcampaign": 1}}, [{"degree.level": {"$ne": "Bachelor"}}])
        assert state == {"degrees": [{"level": "Master", "gradcampaign": 1}, {"level": "Bachelor"}]}

    def test_all_positional(self):
        state = {"grades": [1, 2, 3]}
        _apply(state, {"$set": {"grades.$[]": 0}})
        assert state == {"grades": [0, 0, 0]}

    def test_nested_placeholders(self):
        state = {"matrix": [[1, 5], [7, 2]]}
        _apply(state, {"$set": {"matrix.$[].$[big]": 0}}, [{"big": {"$gt": 4}}])
        assert state == {"matrix": [[1, 0], [0, 2]]}


class TestUnset:
    def test_unset_fields(self):
        state = {"item": "chisel", "sku": "C001", "quantity": 4, "instock": True}
        assert _apply(state, {"$unset": {"quantity": "", "instock": ""}}) == ["instock", "quantity"]
        assert state == {"item": "chisel", "sku": "C001"}

    def test_missing_is_no_op(self):
        assert _apply({"a": 1}, {"$unset": {"b": ""}}) == []

    def test_array_element_becomes_none(self):
        state = {"a": [1, 2, 3]}
        _apply(state, {"$unset": {"a.1": ""}})
        assert state == {"a": [1, None, 3]}


class TestInc:
    def test_increment(self):
        state = {"quantity": 10, "metrics": {"orders": 2, "ratings": 3.5}}
        assert _apply(state, {"$inc": {"quantity": -2, "metrics.orders": 1}}) == ["metrics.orders", "quantity"]
        assert state == {"quantity": 8, "metrics": {"orders": 3, "ratings": 3.5}}

    def test_missing_field_set(self):
        state = {}
        _apply(state, {"$inc": {"count": 5}})
        assert state == {"count": 5}

    def test_non_numeric_field(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"name": "x"}, {"$inc": {"name": 1}})

    def test_non_numeric_amount(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"n": 1}, {"$inc": {"n": "1"}})


class TestMul:
    def test_multiply(self):
        state = {"item": "Hats", "price": 10.99, "quantity": 25}
        _apply(state, {"$mul": {"price": 1.25, "quantity": 2}})
        assert state["price"] == pytest.approx(13.7375)
        assert state["quantity"] == 50

    def test_missing_field(self):
        state = {"item": "Unknown"}
        assert _apply(state, {"$mul": {"price": 100}}) == ["price"]
        assert state == {"item": "Unknown", "price": 0}

    def test_multiply_by_one_is_no_op(self):
        assert _apply({"n": 3}, {"$mul": {"n": 1}}) == []


class TestMinMax:
    def test_max(self):
        state = {"highScore": 800, "lowScore": 200}
        assert _apply(state, {"$max": {"highScore": 950}}) == ["highScore"]
        assert state == {"highScore": 950, "lowScore": 200}
        assert _apply(state, {"$max": {"highScore": 870}}) == []

    def test_min(self):
        state = {"highScore": 800, "lowScore": 200}
        assert _apply(state, {"$min": {"lowScore": 150}}) == ["lowScore"]
        assert state == {"highScore": 800, "lowScore": 150}
        assert _apply(state, {"$min": {"lowScore": 250}}) == []

    def test_dates(self):
        state = {"seen": datetime(2020, 1, 1)}
        _apply(state, {"$max": {"seen": datetime(2021, 1, 1)}})
        assert state == {"seen": datetime(2021, 1, 1)}

    def test_missing_field_set(self):
        state = {}
        _apply(state, {"$min": {"low": 3}})
        assert state == {"low": 3}


class TestCurrentDate:
    def test_sets_now(self):
        state = {"status": "a", "lastModified": 100}
        fields = _apply(state, {"$currentDate": {"lastModified": True, "cancellation.date": True}})
        assert fields == ["cancellation.date", "lastModified"]
        assert state["lastModified"] == NOW
        assert state["cancellation"] == {"date": NOW}

    def test_timestamp_type(self):
        state = {}
        _apply(state, {"$currentDate": {"ts": {"$type": "timestamp"}, "d": {"$type": "date"}}})
        assert state == {"ts": int(NOW.timestamp() * 1000), "d": NOW}

    def test_default_clock_is_utc(self):
        state = {}
        apply_update_expression(state, {"$currentDate": {"at": True}})
        assert state["at"].tzinfo is timezone.utc


class TestPush:
    def test_append(self):
        state = {"scores": [44, 78, 38, 80]}
        assert _apply(state, {"$push": {"scores": 89}}) == ["scores"]
        assert state == {"scores": [44, 78, 38, 80, 89]}

    def test_each(self):
        state = {"scores": [1]}
        _apply(state, {"$push": {"scores": {"$each": [90, 92, 85]}}})
        assert state == {"scores": [1, 90, 92, 85]}

    def test_creates_missing_array(self):
        state = {}
        _apply(state, {"$push": {"tags": "new"}})
        assert state == {"tags": ["new"]}

    def test_sort_and_slice(self):
        state = {"quizzes": [
            {"wk": 1, "score": 10},
            {"wk": 2, "score": 8},
            {"wk": 3, "score": 5},
            {"wk": 4, "score": 6},
        ]}
        _apply(state, {"$push": {"quizzes": {
            "$each": [{"wk": 5, "score": 8}, {"wk": 6, "score": 7}, {"wk": 7, "score": 6}],
            "$sort": {"score": -1},
            "$slice": 3,
        }}})
        assert state == {"quizzes": [
            {"wk": 1, "score": 10},
            {"wk": 2, "score": 8},
            {"wk": 5, "score": 8},
        ]}

    def test_position(self):
        state = {"scores": [100]}
        _apply(state, {"$push": {"scores": {"$each": [50, 60, 70], "$position": 0}}})
        assert state == {"scores": [50, 60, 70, 100]}

    def test_sort_scalars(self):
        state = {"tests": [89, 70, 89, 50]}
        _apply(state, {"$push": {"tests": {"$each": [40, 60], "$sort": 1}}})
        assert state == {"tests": [40, 50, 60, 70, 89, 89]}

    def test_non_array_field(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"tags": "x"}, {"$push": {"tags": "y"}})

    def test_modifiers_require_each(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"tags": []}, {"$push": {"tags": {"$slice": 2}}})


class TestAddToSet:
    def test_array_value_added_whole(self):
        state = {"letters": ["a", "b"]}
        _apply(state, {"$addToSet": {"letters": ["c", "d"]}})
        assert state == {"letters": ["a", "b", ["c", "d"]]}

    def test_skips_existing(self):
        state = {"tags": ["electronics", "camera"]}
        assert _apply(state, {"$addToSet": {"tags": "accessories"}}) == ["tags"]
        assert _apply(state, {"$addToSet": {"tags": "camera"}}) == []
        assert state == {"tags": ["electronics", "camera", "accessories"]}

    def test_each(self):
        state = {"tags": ["electronics", "supplies"]}
        _apply(state, {"$addToSet": {"tags": {"$each": ["camera", "electronics", "accessories"]}}})
        assert state == {"tags": ["electronics", "supplies", "camera", "accessories"]}


class TestPop:
    def test_first(self):
        state = {"scores": [8, 9, 10]}
        _apply(state, {"$pop": {"scores": -1}})
        assert state == {"scores": [9, 10]}

    def test_last(self):
        state = {"scores": [9, 10]}
        _apply(state, {"$pop": {"scores": 1}})
        assert state == {"scores": [9]}

    def test_empty_and_missing_are_no_ops(self):
        assert _apply({"scores": []}, {"$pop": {"scores": 1}}) == []
        assert _apply({}, {"$pop": {"scores": 1}}) == []

    def test_invalid_direction(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"scores": [1]}, {"$pop": {"scores": 2}})


class TestPull:
    def test_equal_values_and_conditions(self):
        state = {
            "fruits": ["apples", "pears", "oranges", "grapes", "bananas"],
            "vegetables": ["carrots", "celery", "squash", "carrots"],
        }
        _apply(state, {"$pull": {"fruits": {"$in": ["apples", "oranges"]}, "vegetables": "carrots"}})
        assert state == {"fruits": ["pears", "grapes", "bananas"], "vegetables": ["celery", "squash"]}

    def test_condition(self):
        state = {"votes": [3, 5, 6, 7, 7, 8]}
        _apply(state, {"$pull": {"votes": {"$gte": 6}}})
        assert state == {"votes": [3, 5]}

    def test_documents(self):
        state = {"results": [{"item": "A", "score": 5}, {"item": "B", "score": 8}]}
        _apply(state, {"$pull": {"results": {"score": 8, "item": "B"}}})
        assert state == {"results": [{"item": "A", "score": 5}]}

    def test_nothing_matched(self):
        assert _apply({"votes": [1]}, {"$pull": {"votes": 9}}) == []

    def test_pull_all(self):
        state = {"scores": [0, 2, 5, 5, 1, 0]}
        assert _apply(state, {"$pullAll": {"scores": [0, 5]}}) == ["scores"]
        assert state == {"scores": [2, 1]}


class TestPlaceholderScoped:
    """Every operator applied through $[id] and $[] reports the array field."""

    def test_inc(self):
        state = {"items": [{"sku": "a", "qty": 1}, {"sku": "b", "qty": 5}]}
        assert _apply(state, {"$inc": {"items.$[i].qty": 2}}, [{"i.qty": {"$gt": 2}}]) == ["items"]
        assert state == {"items": [{"sku": "a", "qty": 1}, {"sku": "b", "qty": 7}]}

    def test_mul(self):
        state = {"items": [{"price": 2}, {"price": 3}]}
        assert _apply(state, {"$mul": {"items.$[].price": 10}}) == ["items"]
        assert state == {"items": [{"price": 20}, {"price": 30}]}

    def test_min(self):
        state = {"items": [{"low": 4}, {"low": 9}]}
        assert _apply(state, {"$min": {"items.$[].low": 5}}) == ["items"]
        assert state == {"items": [{"low": 4}, {"low": 5}]}

    def test_max(self):
        state = {"items": [{"sku": "a", "high": 4}, {"sku": "b", "high": 9}]}
        assert _apply(state, {"$max": {"items.$[i].high": 6}}, [{"i.sku": "a"}]) == ["items"]
        assert state == {"items": [{"sku": "a", "high": 6}, {"sku": "b", "high": 9}]}

    def test_unset(self):
        state = {"items": [{"sku": "a", "note": "x"}, {"sku": "b", "note": "y"}]}
        assert _apply(state, {"$unset": {"items.$[i].note": ""}}, [{"i.sku": "b"}]) == ["items"]
        assert state == {"items": [{"sku": "a", "note": "x"}, {"sku": "b"}]}

    def test_push(self):
        state = {"items": [{"tags": []}, {"tags": ["old"]}]}
        assert _apply(state, {"$push": {"items.$[].tags": "new"}}) == ["items"]
        assert state == {"items": [{"tags": ["new"]}, {"tags": ["old", "new"]}]}

    def test_add_to_set(self):
        state = {"items": [{"sku": "a", "tags": ["x"]}, {"sku": "b", "tags": []}]}
        assert _apply(state, {"$addToSet": {"items.$[].tags": "x"}}) == ["items"]
        assert state == {"items": [{"sku": "a", "tags": ["x"]}, {"sku": "b", "tags": ["x"]}]}

    def test_pop(self):
        state = {"items": [{"sku": "a", "tags": [1, 2]}, {"sku": "b", "tags": [3, 4]}]}
        assert _apply(state, {"$pop": {"items.$[i].tags": -1}}, [{"i.sku": "b"}]) == ["items"]
        assert state == {"items": [{"sku": "a", "tags": [1, 2]}, {"sku": "b", "tags": [4]}]}

    def test_pull(self):
        state = {"items": [{"votes": [3, 7]}, {"votes": [8, 1]}]}
        assert _apply(state, {"$pull": {"items.$[].votes": {"$gte": 6}}}) == ["items"]
        assert state == {"items": [{"votes": [3]}, {"votes": [1]}]}

    def test_pull_all(self):
        state = {"items": [{"sku": "a", "scores": [0, 5, 2]}, {"sku": "b", "scores": [0, 5]}]}
        assert _apply(state, {"$pullAll": {"items.$[i].scores": [0, 5]}}, [{"i.sku": "a"}]) == ["items"]
        assert state == {"items": [{"sku": "a", "scores": [2]}, {"sku": "b", "scores": [0, 5]}]}

    def test_nothing_matched_emits_nothing(self):
        state = {"items": [{"qty": 1}]}
        assert _apply(state, {"$inc": {"items.$[i].qty": 1}}, [{"i.qty": {"$gt": 5}}]) == []
        assert state == {"items": [{"qty": 1}]}


class TestParse:
    def test_unknown_operator(self):
        with pytest.raises(InvalidUpdateError, match="Unsupported update operator"):
            parse_update({"$rename": {"a": "b"}})

    @pytest.mark.parametrize("expr", [{}, [], {"$set": 1}])
    def test_malformed(self, expr):
        with pytest.raises(InvalidUpdateError):
            parse_update(expr)

    def test_nothing_mutated_on_error(self):
        state = {"a": 1}
        with pytest.raises(InvalidUpdateError):
            _apply(state, {"$set": {"a": 2}, "$bogus": {"a": 3}})
        assert state == {"a": 1}

    def test_bad_array_filter_identifier(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"a": [1]}, {"$set": {"a.$[Bad]": 1}}, [{"Bad": 1}])

    def test_array_filters_must_be_objects(self):
        with pytest.raises(InvalidUpdateError):
            _apply({"a": [1]}, {"$set": {"a.$[x]": 1}}, ["x"])

    def test_condition(self):
        state = {"a": 1}
        assert _apply(state, {"$set": {"a": 2}}, condition={"a": 5}) == []
        assert state == {"a": 1}
        assert _apply(state, {"$set": {"a": 2}}, condition={"a": 1}) == ["a"]
