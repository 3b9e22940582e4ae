"""Unit tests for the flow sequence checker."""
from datetime import timedelta

from flow_conformance.config import DomainConfig, FlowDefinition
from flow_conformance.sequence import check_flow_sequence, drop_duplicates, sort_messages

from flow_conformance.conformance.builders import ORDER_FLOW, make_flow, make_message

ORDER = FlowDefinition(flow_id="ORDER_FLOW", tokens=ORDER_FLOW)


def _config(**kwargs) -> DomainConfig:
    return DomainConfig(domain="ONDC:LOG10", flows={"ORDER_FLOW": ORDER_FLOW}, **kwargs)


class TestExactSequence:
    """Tests for flows that follow their template."""

    def test_exact_order_is_valid(self):
        result = check_flow_sequence(make_flow(ORDER_FLOW), ORDER, _config())
        assert result.valid_flow is True
        assert result.errors == ()
        assert result.steps_matched == 6

    def test_sorted_by_capture_time(self):
        messages = list(reversed(make_flow(ORDER_FLOW)))
        assert check_flow_sequence(messages, ORDER).valid_flow is True

    def test_case_insensitive(self):
        messages = [make_message(a.upper(), offset=i) for i, a in enumerate(ORDER_FLOW)]
        assert check_flow_sequence(messages, ORDER).valid_flow is True

    def test_extra_messages_after_template_ignored(self):
        messages = make_flow(ORDER_FLOW + ("status", "on_status", "on_status"))
        result = check_flow_sequence(messages, ORDER)
        assert result.valid_flow is True
        assert result.steps_matched == 6

    def test_no_definition_is_valid(self):
        result = check_flow_sequence(make_flow(("search",)), None)
        assert result.valid_flow is True
        assert result.errors == ()


class TestMismatch:
    """Tests for divergence handling."""

    def test_swapped_init_and_on_init(self):
        actions = ("select", "on_select", "on_init", "init", "confirm", "on_confirm")
        result = check_flow_sequence(make_flow(actions), ORDER, _config())
        assert result.valid_flow is False
        assert result.errors == (
            "Error: Expected 'init' after 'on_select'. Note: 'init' action found later "
            "at payload position 4, suggesting a missing action in the sequence, "
            "but found 'on_init'.",
        )

    def test_first_step_mismatch_mentions_start(self):
        result = check_flow_sequence(make_flow(("on_select",)), ORDER)
        assert result.errors == ("Error: Expected 'select' after 'start', but found 'on_select'.",)

    def test_stops_at_first_error(self):
        actions = ("select", "confirm", "on_select", "search", "cancel", "on_cancel")
        result = check_flow_sequence(make_flow(actions), ORDER)
        assert len(result.errors) == 1
        assert result.steps_matched == 1

    def test_ran_out_of_messages(self):
        result = check_flow_sequence(make_flow(("select", "on_select")), ORDER)
        assert result.valid_flow is False
        assert result.errors == (
            "Error: Expected 'init' but no more payloads found. Sequence position: 3",
        )

    def test_synonym_display(self):
        config = _config(synonyms={"select": ["select", "init"]})
        result = check_flow_sequence(make_flow(("on_select",)), ORDER, config)
        assert result.errors[0].startswith("Error: Expected 'select or init' after 'start'")


class TestSynonyms:
    """Tests for declared synonyms."""

    def test_synonym_realigns_to_later_step(self):
        """Test a buyer skipping select and starting with init."""
        config = _config(synonyms={"select": ["select", "init"]})
        messages = make_flow(("init", "on_init", "confirm", "on_confirm"))
        result = check_flow_sequence(messages, ORDER, config)
        assert result.valid_flow is True

    def test_without_synonym_init_first_fails(self):
        messages = make_flow(("init", "on_init", "confirm", "on_confirm"))
        assert check_flow_sequence(messages, ORDER, _config()).valid_flow is False

    def test_synonym_without_later_step_just_advances(self):
        flow = FlowDefinition(flow_id="F", tokens=("select", "on_select"))
        config = DomainConfig(domain="D", synonyms={"select": ["init"]})
        assert check_flow_sequence(make_flow(("init", "on_select")), flow, config).valid_flow


class TestTolerances:
    """Tests for opt-in tolerances."""

    def test_optional_step_skipped(self):
        flow = FlowDefinition(flow_id="F", tokens=("search", "on_search", "select?", "init"))
        assert check_flow_sequence(make_flow(("search", "on_search", "init")), flow).valid_flow
        assert check_flow_sequence(make_flow(("search", "on_search", "select", "init")), flow).valid_flow

    def test_trailing_optional_steps_need_no_payloads(self):
        flow = FlowDefinition(flow_id="F", tokens=("search", "on_search?", "html_form"))
        assert check_flow_sequence(make_flow(("search",)), flow).valid_flow

    def test_placeholder_skipped_and_noted(self):
        flow = FlowDefinition(flow_id="F", tokens=("select", "on_select", "html_form", "init"))
        assert check_flow_sequence(make_flow(("select", "on_select", "init")), flow).valid_flow
        result = check_flow_sequence(make_flow(("select", "on_select", "confirm")), flow)
        assert result.errors == (
            "Error: Expected 'init' after 'on_select' (HTML_FORM was skipped), but found 'confirm'.",
        )

    def test_unsolicited_action_tolerated(self):
        actions = ("select", "on_select", "on_status", "init", "on_init", "confirm", "on_confirm")
        assert not check_flow_sequence(make_flow(actions), ORDER, _config()).valid_flow
        result = check_flow_sequence(make_flow(actions), ORDER, _config(unsolicited_actions=["on_status"]))
        assert result.valid_flow
        assert result.tolerated == (2,)

    def test_repeated_callback_collapsed(self):
        actions = ("select", "on_select", "on_select", "init", "on_init", "confirm", "on_confirm")
        assert not check_flow_sequence(make_flow(actions), ORDER, _config()).valid_flow
        config = _config(collapse_repeated_callbacks=True)
        assert check_flow_sequence(make_flow(actions), ORDER, config).valid_flow

    def test_repeated_request_not_collapsed(self):
        actions = ("select", "select", "on_select")
        config = _config(collapse_repeated_callbacks=True)
        assert not check_flow_sequence(make_flow(actions), ORDER, config).valid_flow

    def test_duplicate_window(self):
        messages = make_flow(ORDER_FLOW)
        dup = make_message("select", offset=0.5)
        config = _config(duplicate_window_seconds=1)
        assert not check_flow_sequence(messages + [dup], ORDER, _config()).valid_flow
        assert check_flow_sequence(messages + [dup], ORDER, config).valid_flow

    def test_early_exit_before_request(self):
        flow = FlowDefinition(flow_id="F", tokens=("confirm", "on_confirm", "status", "on_status"))
        messages = make_flow(("confirm", "on_confirm"))
        assert not check_flow_sequence(messages, flow).valid_flow
        config = DomainConfig(domain="D", early_exit_actions=["status"])
        assert check_flow_sequence(messages, flow, config).valid_flow

    def test_early_exit_needs_callback_before(self):
        flow = FlowDefinition(flow_id="F", tokens=("confirm", "status"))
        config = DomainConfig(domain="D", early_exit_actions=["status"])
        assert not check_flow_sequence(make_flow(("confirm",)), flow, config).valid_flow


class TestHelpers:
    def test_sort_is_stable(self):
        a = make_message("search", offset=0)
        b = make_message("on_search", offset=0)
        assert sort_messages([a, b]) == [a, b]
        assert sort_messages([b, a]) == [b, a]

    def test_drop_duplicates_per_transaction(self):
        a = make_message("search", offset=0)
        b = make_message("search", offset=0.2, transactionId="txn-002")
        c = make_message("search", offset=0.4)
        assert drop_duplicates([a, b, c], 1.0) == [a, b]
        assert drop_duplicates([a, b, c], 0) == [a, b, c]

    def test_drop_duplicates_outside_window(self):
        a = make_message("search", offset=0)
        later = a.model_copy(update={"created_at": a.created_at + timedelta(seconds=5)})
        assert drop_duplicates([a, later], 1.0) == [a, later]
