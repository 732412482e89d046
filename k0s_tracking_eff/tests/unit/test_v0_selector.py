"""
Unit tests for the K0s candidate selection.

Covers the per-candidate predicate, fail-closed handling of missing inputs,
SelectionCuts validation, and the columnar cut application.
"""

from __future__ import annotations

import awkward as ak
import numpy as np
import pytest

from k0s_tracking_eff.modules.data_model import Track, V0Candidate
from k0s_tracking_eff.modules.exceptions import BranchMissingError, ConfigurationError
from k0s_tracking_eff.modules.v0_selector import K0sSelector, SelectionCuts


@pytest.fixture
def selector() -> K0sSelector:
    return K0sSelector()


@pytest.mark.unit
class TestSelectionCuts:
    """Test SelectionCuts defaults and validation."""

    def test_defaults(self) -> None:
        cuts = SelectionCuts()

        assert cuts.v0cospa == 0.995
        assert cuts.rapidity == 0.5
        assert cuts.nsigma_tpc == 10.0
        assert cuts.event_selection is True
        assert cuts.symmetric_nsigma is False
        assert cuts.replicate_neg_its_status is False

    def test_from_dict_keeps_defaults_for_missing_keys(self) -> None:
        cuts = SelectionCuts.from_dict({"v0cospa": 0.999})

        assert cuts.v0cospa == 0.999
        assert cuts.rapidity == 0.5

    def test_from_dict_converts_integers(self) -> None:
        cuts = SelectionCuts.from_dict({"nsigma_tpc": 5})

        assert isinstance(cuts.nsigma_tpc, float)
        assert cuts.nsigma_tpc == 5.0

    def test_from_dict_rejects_unknown_key(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            SelectionCuts.from_dict({"v0_cospa": 0.99})

        assert "v0_cospa" in str(exc_info.value)

    @pytest.mark.parametrize("values", [
        {"v0cospa": "high"},
        {"rapidity": True},
        {"event_selection": 1},
    ])
    def test_from_dict_rejects_wrong_types(self, values) -> None:
        with pytest.raises(ConfigurationError):
            SelectionCuts.from_dict(values)

    @pytest.mark.parametrize("kwargs", [
        {"v0cospa": 1.5},
        {"v0cospa": -1.1},
        {"rapidity": 0.0},
        {"nsigma_tpc": -3.0},
    ])
    def test_out_of_range_values(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            SelectionCuts(**kwargs)

    def test_replace_ignores_none(self) -> None:
        cuts = SelectionCuts().replace(v0cospa=0.98, rapidity=None, event_selection=False)

        assert cuts.v0cospa == 0.98
        assert cuts.rapidity == 0.5
        assert cuts.event_selection is False


@pytest.mark.unit
class TestAcceptV0:
    """Test the per-candidate predicate."""

    def test_good_candidate_accepted(self, selector, make_v0, make_track, good_collision) -> None:
        assert selector.accept_v0(make_v0(), make_track(), make_track(), good_collision)

    @pytest.mark.parametrize("cos_pa", [0.9949, 0.9, 0.0, -1.0])
    def test_low_cospa_rejected(self, selector, make_v0, make_track, good_collision, cos_pa) -> None:
        v0 = make_v0(cos_pa=cos_pa, rapidity=0.0)
        assert not selector.accept_v0(v0, make_track(), make_track(), good_collision)

    def test_cospa_at_threshold_accepted(self, selector, make_v0, make_track, good_collision) -> None:
        v0 = make_v0(cos_pa=0.995)
        assert selector.accept_v0(v0, make_track(), make_track(), good_collision)

    @pytest.mark.parametrize("rapidity,accepted", [
        (0.0, True), (0.5, True), (-0.5, True), (0.51, False), (-0.8, False),
    ])
    def test_rapidity_window(self, selector, make_v0, make_track, good_collision,
                             rapidity, accepted) -> None:
        v0 = make_v0(rapidity=rapidity)
        assert selector.accept_v0(v0, make_track(), make_track(), good_collision) is accepted

    def test_both_daughters_without_tpc_rejected(self, selector, make_v0, make_track,
                                                 good_collision) -> None:
        pos = make_track(has_tpc=False)
        neg = make_track(has_tpc=False)
        assert not selector.accept_v0(make_v0(), pos, neg, good_collision)

    @pytest.mark.parametrize("charge", ["pos", "neg"])
    def test_one_daughter_without_tpc_rejected(self, selector, make_v0, make_track,
                                               good_collision, charge) -> None:
        pos = make_track(has_tpc=charge != "pos")
        neg = make_track(has_tpc=charge != "neg")
        assert not selector.accept_v0(make_v0(), pos, neg, good_collision)

    @pytest.mark.parametrize("nsigma,accepted", [
        (10.0, True), (10.01, False), (-3.0, True), (-50.0, True),
    ])
    def test_nsigma_is_upper_bound_only(self, selector, make_v0, make_track, good_collision,
                                        nsigma, accepted) -> None:
        pos = make_track(tpc_nsigma_pi=nsigma)
        assert selector.accept_v0(make_v0(), pos, make_track(), good_collision) is accepted

    def test_symmetric_nsigma_rejects_large_negative(self, make_v0, make_track,
                                                     good_collision) -> None:
        selector = K0sSelector(SelectionCuts(symmetric_nsigma=True))
        neg = make_track(tpc_nsigma_pi=-50.0)
        assert not selector.accept_v0(make_v0(), make_track(), neg, good_collision)

    def test_custom_cuts(self, make_v0, make_track, good_collision) -> None:
        selector = K0sSelector(SelectionCuts(v0cospa=0.9999))
        assert not selector.accept_v0(make_v0(cos_pa=0.999), make_track(), make_track(),
                                      good_collision)


@pytest.mark.unit
class TestAcceptV0FailsClosed:
    """Missing or malformed inputs reject the candidate without raising."""

    def test_missing_daughter(self, selector, make_v0, make_track, good_collision) -> None:
        assert not selector.accept_v0(make_v0(), None, make_track(), good_collision)
        assert not selector.accept_v0(make_v0(), make_track(), None, good_collision)

    @pytest.mark.parametrize("field", ["cos_pa", "rapidity", "radius", "pt", "mass"])
    @pytest.mark.parametrize("value", [None, float("nan")])
    def test_missing_v0_field(self, selector, make_v0, make_track, good_collision,
                              field, value) -> None:
        v0 = make_v0(**{field: value})
        assert not selector.accept_v0(v0, make_track(), make_track(), good_collision)

    @pytest.mark.parametrize("overrides", [
        {"has_tpc": None},
        {"tpc_nsigma_pi": None},
        {"tpc_nsigma_pi": float("nan")},
    ])
    def test_missing_track_field(self, selector, make_v0, make_track, good_collision,
                                 overrides) -> None:
        neg = make_track(**overrides)
        assert not selector.accept_v0(make_v0(), make_track(), neg, good_collision)

    def test_missing_its_information_does_not_reject(self, selector, make_v0, make_track,
                                                     good_collision) -> None:
        pos = make_track(has_its=None, its_cluster_map=None)
        assert selector.accept_v0(make_v0(), pos, make_track(), good_collision)

    @pytest.mark.parametrize("flag", [np.bool_(True), 1, np.int32(2), 1.0])
    def test_truthy_tpc_flags_accepted(self, selector, make_v0, make_track, good_collision,
                                       flag) -> None:
        pos = make_track(has_tpc=flag)
        neg = make_track(has_tpc=flag)
        assert selector.accept_v0(make_v0(), pos, neg, good_collision)

    @pytest.mark.parametrize("flag", [np.bool_(False), 0, 0.0, float("nan")])
    def test_falsy_tpc_flags_rejected(self, selector, make_v0, make_track, good_collision,
                                      flag) -> None:
        neg = make_track(has_tpc=flag)
        assert not selector.accept_v0(make_v0(), make_track(), neg, good_collision)


@pytest.fixture
def v0_table() -> ak.Array:
    """Flat V0 table with joined daughter columns, one row per cut branch"""
    nan = float("nan")
    return ak.Array({
        "cos_pa":            [0.999, 0.99, 0.999, 0.999, 0.999, 0.999, None, nan, 0.999],
        "rapidity":          [0.1,   0.1,  0.7,   0.1,   0.1,   -0.2,  0.1,  0.1, 0.1],
        "radius":            [3.0,   3.0,  3.0,   3.0,   3.0,   3.0,   3.0,  3.0, nan],
        "pt":                [1.0] * 9,
        "mass":              [0.5] * 9,
        "pos_has_tpc":       [True, True, True, False, True, True, True, True, True],
        "neg_has_tpc":       [True, True, True, True,  True, True, True, True, True],
        "pos_tpc_nsigma_pi": [1.0,  1.0,  1.0,  1.0,   12.0, -30.0, 1.0, 1.0, 1.0],
        "neg_tpc_nsigma_pi": [1.0,  1.0,  1.0,  1.0,   1.0,  None, 1.0,  1.0, 1.0],
    })


@pytest.mark.unit
class TestApplyV0Cuts:
    """Test the columnar cut application."""

    def test_selected_rows(self, selector, v0_table) -> None:
        selected = selector.apply_v0_cuts(v0_table)

        assert len(selected) == 1
        assert selected["rapidity"][0] == pytest.approx(0.1)

    def test_agrees_with_per_candidate_predicate(self, selector, v0_table, good_collision) -> None:
        expected = 0
        for row in ak.to_list(v0_table):
            v0 = V0Candidate(pos_track_index=0, neg_track_index=1, cos_pa=row["cos_pa"],
                             radius=row["radius"], pt=row["pt"], rapidity=row["rapidity"],
                             mass=row["mass"])
            pos = Track(has_tpc=row["pos_has_tpc"], tpc_nsigma_pi=row["pos_tpc_nsigma_pi"])
            neg = Track(has_tpc=row["neg_has_tpc"], tpc_nsigma_pi=row["neg_tpc_nsigma_pi"])
            expected += selector.accept_v0(v0, pos, neg, good_collision)

        assert len(selector.apply_v0_cuts(v0_table)) == expected

    def test_symmetric_nsigma(self, v0_table) -> None:
        selector = K0sSelector(SelectionCuts(symmetric_nsigma=True, nsigma_tpc=20.0))
        selected = selector.apply_v0_cuts(v0_table)

        # row 4 (nSigma 12) now passes, row 5 (-30 and None) still fails
        assert len(selected) == 2
        assert np.all(np.abs(ak.to_numpy(selected["pos_tpc_nsigma_pi"])) <= 20.0)

    def test_missing_field_raises(self, selector, v0_table) -> None:
        table = v0_table[[f for f in v0_table.fields if f != "neg_has_tpc"]]

        with pytest.raises(BranchMissingError) as exc_info:
            selector.apply_v0_cuts(table)

        assert exc_info.value.branch_name == "neg_has_tpc"

    def test_empty_table(self, selector, v0_table) -> None:
        assert len(selector.apply_v0_cuts(v0_table[:0])) == 0

    def test_integer_flags_agree_row_by_row(self, selector, good_collision) -> None:
        table = ak.Array({
            "cos_pa": np.full(5, 0.999),
            "rapidity": np.full(5, 0.1),
            "pos_has_tpc": np.array([1, 0, 2, 1, 1], dtype=np.int32),
            "neg_has_tpc": np.array([1, 1, 1, 0, 3], dtype=np.int32),
            "pos_tpc_nsigma_pi": np.ones(5),
            "neg_tpc_nsigma_pi": np.ones(5),
        })

        per_row = []
        for row in ak.to_list(table):
            v0 = V0Candidate(pos_track_index=0, neg_track_index=1, cos_pa=row["cos_pa"],
                             radius=3.0, pt=1.0, rapidity=row["rapidity"], mass=0.5)
            pos = Track(has_tpc=row["pos_has_tpc"], tpc_nsigma_pi=row["pos_tpc_nsigma_pi"])
            neg = Track(has_tpc=row["neg_has_tpc"], tpc_nsigma_pi=row["neg_tpc_nsigma_pi"])
            per_row.append(selector.accept_v0(v0, pos, neg, good_collision))

        selected = selector.apply_v0_cuts(table)

        assert per_row == [True, False, True, False, True]
        assert ak.to_list(selected["pos_has_tpc"]) == [1, 2, 1]
        assert ak.to_list(selected["neg_has_tpc"]) == [1, 1, 3]
