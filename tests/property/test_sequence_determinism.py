"""Property-based tests for sequence checking."""
import random

from hypothesis import given, settings, strategies as st

from flow_conformance.config import FlowDefinition
from flow_conformance.sequence import check_flow_sequence

from flow_conformance.conformance.builders import ORDER_FLOW, make_flow

ORDER = FlowDefinition(flow_id="ORDER_FLOW", tokens=ORDER_FLOW)


class TestSequenceDeterminism:
    """The verdict depends on capture times, never on input order."""

    @settings(deadline=None)
    @given(st.permutations(ORDER_FLOW), st.randoms(use_true_random=False))
    def test_input_order_irrelevant(self, actions, rng: random.Random):
        messages = make_flow(actions)
        shuffled = list(messages)
        rng.shuffle(shuffled)

        first = check_flow_sequence(messages, ORDER)
        second = check_flow_sequence(shuffled, ORDER)

        assert first == second

    @settings(deadline=None)
    @given(st.permutations(ORDER_FLOW))
    def test_valid_only_in_template_order(self, actions):
        result = check_flow_sequence(make_flow(actions), ORDER)

        if tuple(actions) == ORDER_FLOW:
            assert result.valid_flow is True
            assert result.errors == ()
            assert result.steps_matched == len(ORDER_FLOW)
        else:
            assert result.valid_flow is False
            assert len(result.errors) == 1
            assert result.errors[0].startswith("Error: Expected '")

    @settings(deadline=None)
    @given(st.integers(min_value=0, max_value=len(ORDER_FLOW) - 1))
    def test_truncated_flow_reports_position(self, length):
        result = check_flow_sequence(make_flow(ORDER_FLOW[:length]), ORDER)

        assert result.valid_flow is False
        assert result.errors == (
            f"Error: Expected '{ORDER_FLOW[length]}' but no more payloads found. "
            f"Sequence position: {length + 1}",
        )

    @settings(deadline=None)
    @given(st.lists(st.sampled_from(("on_status", "on_update", "track")), max_size=5))
    def test_extra_messages_after_template_ignored(self, extra):
        result = check_flow_sequence(make_flow(ORDER_FLOW + tuple(extra)), ORDER)

        assert result.valid_flow is True
        assert result.steps_matched == len(ORDER_FLOW)
