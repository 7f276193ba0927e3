import unittest

from trace_diagnostics.builder import build_model
from trace_diagnostics.user_model import (
    ExpectationKind,
    UserExpectation,
    UserExpectationClassifier,
    assign_events
)


def _x(name, ts, dur, tid=1):
    return {"name": name, "cat": "toplevel", "ph": "X", "ts": ts, "dur": dur, "pid": 1, "tid": tid}


def _mark(name, ts):
    return {"name": name, "cat": "blink.user_timing", "ph": "R", "ts": ts, "pid": 1, "tid": 1}


def _overlapping_trace():
    return [
        _mark("navigationStart", 0),
        {"name": "InputLatency::GestureTap", "cat": "benchmark", "ph": "b", "ts": 10000, "pid": 1, "tid": 2, "id": "0x1"},
        {"name": "InputLatency::GestureTap", "cat": "benchmark", "ph": "e", "ts": 30000, "pid": 1, "tid": 2, "id": "0x1"},
        _mark("firstContentfulPaint", 50000),
        _x("early", 5000, 1000),
        _x("tap-handler", 15000, 1000),
        _x("late-load", 40000, 1000),
        _x("idle-small", 60000, 1000),
        _x("idle-long", 100000, 80000)
    ]


def _classify(events):
    return UserExpectationClassifier().classify(build_model(events))


class TestClassifier(unittest.TestCase):
    def test_overlapping_windows_claim_each_event_once(self):
        model = _classify(_overlapping_trace())
        kinds = [(ue.kind, ue.start, ue.end) for ue in model.user_expectations]
        self.assertEqual(kinds, [
            (ExpectationKind.LOAD, 0.0, 50.0),
            (ExpectationKind.RESPONSE, 10.0, 30.0),
            (ExpectationKind.IDLE, 50.0, 180.0)
        ])

        owners = {}
        for ue in model.user_expectations:
            for event in ue.associated_events:
                self.assertNotIn(event.name, owners)
                owners[event.name] = ue.kind
        self.assertEqual(owners, {
            "early": ExpectationKind.LOAD,
            "tap-handler": ExpectationKind.RESPONSE,
            "late-load": ExpectationKind.LOAD,
            "idle-small": ExpectationKind.IDLE,
            "idle-long": ExpectationKind.IDLE
        })

    def test_titles_and_stable_ids(self):
        model = _classify(_overlapping_trace())
        load, response, idle = model.user_expectations
        self.assertEqual(load.stable_id, "Load.0")
        self.assertEqual(load.initiator_title, "Successful")
        self.assertEqual(response.stage_title, "Response")
        self.assertEqual(response.initiator_title, "Tap")
        self.assertEqual(idle.stable_id, "Idle.0")
        self.assertEqual(idle.initiator_title, "")

    def test_trace_without_markers_is_one_idle(self):
        model = _classify([_x("a", 0, 1000), _x("b", 5000, 1000)])
        self.assertEqual(len(model.user_expectations), 1)
        idle = model.user_expectations[0]
        self.assertEqual(idle.kind, ExpectationKind.IDLE)
        self.assertEqual((idle.start, idle.end), (0.0, 6.0))
        self.assertEqual([e.name for e in idle.associated_events], ["a", "b"])

    def test_nested_slices_are_not_associated(self):
        model = _classify([_x("parent", 0, 10000), _x("child", 1000, 1000)])
        names = [e.name for ue in model.user_expectations for e in ue.associated_events]
        self.assertEqual(names, ["parent"])

    def test_frame_runs_become_animations(self):
        events = [_x(f"frame{i}", i * 16000, 100) for i in range(3)]
        events += [
            {"name": "DrawFrame", "cat": "cc", "ph": "I", "ts": i * 16000, "pid": 1, "tid": 3}
            for i in range(6)
        ]
        events.append(_x("after", 200000, 100))
        model = _classify(events)
        animations = [ue for ue in model.user_expectations if ue.kind is ExpectationKind.ANIMATION]
        self.assertEqual(len(animations), 1)
        self.assertEqual((animations[0].start, animations[0].end), (0.0, 80.0))
        self.assertEqual(animations[0].initiator_title, "Frames")
        self.assertEqual(len(animations[0].associated_events), 3)

    def test_animation_async_slice_is_css_animation(self):
        model = _classify([
            _x("before", 0, 1000),
            {"name": "Animation", "cat": "blink.animations", "ph": "b", "ts": 10000, "pid": 1, "tid": 2, "id": "0x5"},
            {"name": "Animation", "cat": "blink.animations", "ph": "e", "ts": 90000, "pid": 1, "tid": 2, "id": "0x5"},
            _x("anim-work", 20000, 1000),
            _x("after", 100000, 1000)
        ])
        kinds = [(ue.kind, ue.start, ue.end) for ue in model.user_expectations]
        self.assertEqual(kinds, [
            (ExpectationKind.IDLE, 0.0, 10.0),
            (ExpectationKind.ANIMATION, 10.0, 90.0),
            (ExpectationKind.IDLE, 90.0, 101.0)
        ])
        animation = model.user_expectations[1]
        self.assertEqual(animation.initiator_title, "CSS")
        self.assertEqual([e.name for e in animation.associated_events], ["anim-work"])

    def test_load_without_paint_ends_at_next_navigation(self):
        model = _classify([
            _mark("navigationStart", 0),
            _mark("navigationStart", 30000),
            _x("task", 40000, 20000)
        ])
        loads = [(ue.stable_id, ue.start, ue.end) for ue in model.user_expectations]
        self.assertEqual(loads, [("Load.0", 0.0, 30.0), ("Load.1", 30.0, 60.0)])
        self.assertEqual([e.name for e in model.user_expectations[1].associated_events], ["task"])

    def test_custom_detector(self):
        def one_response(model, prior):
            return [UserExpectation(ExpectationKind.RESPONSE, 0.0, 2.0, "Click")]

        classifier = UserExpectationClassifier()
        classifier.register_detector(ExpectationKind.RESPONSE, one_response)
        model = classifier.classify(build_model([_x("a", 0, 1000), _x("b", 5000, 1000)]))
        response = model.user_expectations[0]
        self.assertEqual(response.kind, ExpectationKind.RESPONSE)
        self.assertEqual([e.name for e in response.associated_events], ["a"])


class TestAssignEvents(unittest.TestCase):
    def test_first_claim_wins_and_unclaimed_returned(self):
        model = build_model([_x("in", 1000, 10), _x("out", 50000, 10)])
        events = model.top_level_slices()
        first = UserExpectation(ExpectationKind.RESPONSE, 0.0, 10.0)
        second = UserExpectation(ExpectationKind.IDLE, 0.0, 10.0)
        unclaimed = assign_events(events, [first, second])
        self.assertEqual([e.name for e in first.associated_events], ["in"])
        self.assertEqual(second.associated_events, [])
        self.assertEqual([e.name for e in unclaimed], ["out"])


if __name__ == "__main__":
    unittest.main()
