"""Tests for EffectSession: immutable source, re-derivation, stale result handling."""

import threading
from io import BytesIO

import numpy as np
import pytest
from PIL import Image
from unittest.mock import patch

from core.safety import InvalidParameter
from core.session import EffectSession
from effects import run_pipeline


@pytest.fixture
def session(gradient_bitmap):
    with EffectSession(gradient_bitmap, params={"amplitude": 6, "lighting_intensity": 15}) as s:
        yield s


class TestSource:

    def test_source_is_read_only_copy(self, gradient_bitmap, session):
        assert session.source is not gradient_bitmap
        with pytest.raises(ValueError):
            session.source[0, 0, 0] = 1

    def test_caller_mutation_does_not_leak(self, gradient_bitmap, session):
        before = session.source.copy()
        gradient_bitmap[:] = 0
        np.testing.assert_array_equal(session.source, before)

    def test_invalid_initial_params(self, gradient_bitmap):
        with pytest.raises(InvalidParameter):
            EffectSession(gradient_bitmap, params={"reed_width": 0})


class TestRender:

    def test_render_matches_pipeline(self, gradient_bitmap, session):
        expected = run_pipeline(gradient_bitmap, **session.params)
        np.testing.assert_array_equal(session.render(), expected)
        np.testing.assert_array_equal(session.latest, expected)

    def test_each_change_rederives_from_source(self, gradient_bitmap, session):
        session.render(amplitude=20)
        second = session.render(amplitude=0, lighting_intensity=0)
        # Not a distortion of the previous output: straight back to the source
        np.testing.assert_array_equal(second, gradient_bitmap)

    def test_update_bumps_generation(self, session):
        g = session.generation
        params = session.update(reed_width=12)
        assert params["reed_width"] == 12
        assert session.generation == g + 1

    def test_failed_update_leaves_params(self, session):
        before = session.params
        g = session.generation
        with pytest.raises(InvalidParameter):
            session.update(amplitude=-1)
        assert session.params == before
        assert session.generation == g


class TestSubmit:

    def test_submit_result(self, session):
        result = session.submit(amplitude=3).result(timeout=10)
        np.testing.assert_array_equal(session.latest, result)
        assert session.is_current(session.generation)

    def test_schedule_reports_params(self, session):
        job = session.schedule(amplitude=4)
        np.testing.assert_array_equal(job.future.result(timeout=10), session.latest)
        assert job.params["amplitude"] == 4
        assert job.generation == session.generation

    def test_closed_session_refuses_work(self, gradient_bitmap):
        s = EffectSession(gradient_bitmap)
        s.close()
        with pytest.raises(RuntimeError):
            s.submit()

    def test_stale_result_discarded(self, gradient_bitmap, session):
        """A run that finishes after a newer request never becomes latest."""
        release = threading.Event()
        started = threading.Event()
        calls = []

        def slow_pipeline(source, **params):
            calls.append(params["amplitude"])
            if params["amplitude"] == 1:
                started.set()
                release.wait(timeout=10)
            return run_pipeline(source, **params)

        with patch("core.session.run_pipeline", side_effect=slow_pipeline):
            old = session.submit(amplitude=1)
            assert started.wait(timeout=10)
            new_result = session.submit(amplitude=2).result(timeout=10)
            release.set()
            old_result = old.result(timeout=10)

        assert calls == [1, 2]
        np.testing.assert_array_equal(session.latest, new_result)
        assert not np.array_equal(old_result, new_result)
        assert session.params["amplitude"] == 2


class TestPreviewExport:

    def test_preview_renders_on_demand(self, session):
        assert session.latest is None
        small = session.preview(32, 32)
        assert small.shape == (24, 32, 4)
        assert session.latest is not None

    def test_preview_rerenders_after_update(self, session):
        session.render()
        first = session.latest
        session.update(amplitude=30)
        session.preview(64, 48)
        assert session.latest is not first

    def test_export_png_full_resolution(self, session):
        data = session.export("png")
        img = Image.open(BytesIO(data))
        assert img.size == (64, 48)
        np.testing.assert_array_equal(np.array(img), session.latest)
