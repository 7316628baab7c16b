"""
Tests for exogenous event merging and series loading.
"""

import math

import pytest

from hierepi.core.disease_params import RateConstants
from hierepi.core.errors import MalformedInputSeries
from hierepi.core.events import (EventKind, ExogenousEventQueue, ImportedCases,
                                 read_imported_infections, read_rate_changes)


def rate_change(time, beta=0.1):
    return RateConstants(beta=(beta,), sigma1=0.2, sigma2=0.2, gamma1=0.1, gamma2=0.1, time=time)


class TestMerge:
    """Two-pointer merge of imported cases and rate changes."""

    def test_times_non_decreasing_with_sentinel(self):
        imported = [ImportedCases(1., 1), ImportedCases(5., 2), ImportedCases(7., 4)]
        changes = [rate_change(0.), rate_change(5.), rate_change(6.)]
        queue = ExogenousEventQueue.merge(imported, changes)

        times = [event.time for event in queue]
        assert times == sorted(times)
        assert len(queue) == 7
        assert math.isinf(times[-1])
        assert list(queue)[-1].is_sentinel

    def test_imported_before_rate_change_at_equal_time(self):
        queue = ExogenousEventQueue.merge([ImportedCases(5., 3)], [rate_change(5.)])
        kinds = [event.kind for event in queue]
        assert kinds == [EventKind.IMPORTED_INFECTION, EventKind.RATE_CHANGE,
                         EventKind.IMPORTED_INFECTION]
        assert queue.peek().payload.infected == 3

    def test_empty_series(self):
        queue = ExogenousEventQueue.merge()
        assert len(queue) == 1
        assert queue.peek().is_sentinel

    def test_decreasing_imported_counts(self):
        with pytest.raises(MalformedInputSeries):
            ExogenousEventQueue.merge([ImportedCases(1., 3), ImportedCases(2., 2)])

    def test_unsorted_times(self):
        with pytest.raises(MalformedInputSeries):
            ExogenousEventQueue.merge([], [rate_change(2.), rate_change(1.)])
        with pytest.raises(MalformedInputSeries):
            ExogenousEventQueue.merge([ImportedCases(2., 1), ImportedCases(1., 2)])


class TestQueue:
    """Queue consumption."""

    def test_pop_in_order(self):
        queue = ExogenousEventQueue.merge([ImportedCases(1., 1)], [rate_change(2.)])
        assert queue.pop().time == 1.
        assert queue.pop().time == 2.
        assert queue.peek().is_sentinel

    def test_sentinel_cannot_be_popped(self):
        queue = ExogenousEventQueue.merge()
        with pytest.raises(IndexError):
            queue.pop()

    def test_sentinel_is_empty_import_at_infinity(self):
        end = ExogenousEventQueue.merge().peek()
        assert end.kind is EventKind.IMPORTED_INFECTION
        assert math.isinf(end.time)
        assert end.payload.infected == 0

    def test_copy_is_independent(self):
        queue = ExogenousEventQueue.merge([ImportedCases(1., 1), ImportedCases(2., 2)])
        copy = queue.copy()
        copy.pop()

        assert len(copy) == 2
        assert len(queue) == 3
        assert queue.peek().time == 1.


class TestLoaders:
    """Whitespace separated series files."""

    def test_imported_infections(self, tmp_path):
        path = tmp_path / "imported.dat"
        path.write_text("# time infected recovered\n0 1 0\n5.5 3 1\n")

        records = read_imported_infections(path)
        assert records == [ImportedCases(0., 1, 0), ImportedCases(5.5, 3, 1)]

    def test_imported_without_recovered(self, tmp_path):
        path = tmp_path / "imported.dat"
        path.write_text("1 2\n2 4\n")
        assert read_imported_infections(path)[1] == ImportedCases(2., 4, 0)

    def test_imported_wrong_columns(self, tmp_path):
        path = tmp_path / "imported.dat"
        path.write_text("1 2 3 4\n")
        with pytest.raises(MalformedInputSeries):
            read_imported_infections(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "imported.dat"
        path.write_text("# nothing yet\n")
        assert read_imported_infections(path) == []

    def test_rate_changes(self, tmp_path):
        path = tmp_path / "rates.dat"
        path.write_text("# time beta1 beta2 sigma1 sigma2 gamma1 gamma2\n"
                        "10 0.5 0.1 0.2 0.2 0.1 0.1\n")

        records = read_rate_changes(path, levels=2)
        assert len(records) == 1
        assert records[0].time == 10.
        assert records[0].beta == (0.5, 0.1)
        assert records[0].gamma2 == 0.1

    def test_rate_changes_wrong_levels(self, tmp_path):
        path = tmp_path / "rates.dat"
        path.write_text("10 0.5 0.1 0.2 0.2 0.1 0.1\n")
        with pytest.raises(MalformedInputSeries):
            read_rate_changes(path, levels=3)

    def test_rate_changes_negative(self, tmp_path):
        path = tmp_path / "rates.dat"
        path.write_text("10 -0.5 0.2 0.2 0.1 0.1\n")
        with pytest.raises(MalformedInputSeries):
            read_rate_changes(path, levels=1)
