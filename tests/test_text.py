"""Tests for trigger handling, speech cleanup and formatting."""

from datetime import datetime

from kuber.core.text import (
    append_trigger,
    clean_for_speech,
    extract_triggers,
    format_inr,
    format_quantity,
    generate_order_number,
    remove_triggers
)


def test_remove_triggers():
    assert remove_triggers("Atta: 5 kg available. [[SHOW_INVENTORY_CARD]]") == "Atta: 5 kg available."


def test_remove_triggers_drops_prompt_annotations():
    assert remove_triggers("Stock dekho [CONTEXT: x] [INTENT:INVENTORY_CHECK]") == "Stock dekho"
    assert remove_triggers("Atta [SHOW_CARD] 5 kg [[SHOW_INVENTORY_CARD]] hai") == "Atta 5 kg hai"
    assert remove_triggers("Haan.\n[CONTEXT: user\nwants stock]") == "Haan."


def test_remove_triggers_keeps_inner_spacing():
    text = "  Atta:  5 kg\n"
    assert remove_triggers(text + "[[SHOW_INVENTORY_CARD]]") == text.strip()


def test_extract_triggers_in_order():
    text = "[[SHOW_PROFIT_CHART]] Badhiya hafta! [[SHOW_LOW_STOCK_ALERT]]"
    assert extract_triggers(text) == ["[[SHOW_PROFIT_CHART]]", "[[SHOW_LOW_STOCK_ALERT]]"]


def test_clean_for_speech_strips_all_control_tokens():
    text = "Stock theek hai. [[SHOW_INVENTORY_CARD]] [SHOW_CARD] [INTENT:stock]\n[CONTEXT: user\nwants stock]"
    assert clean_for_speech(text) == "Stock theek hai."


def test_clean_for_speech_of_only_tokens_is_empty():
    assert clean_for_speech("[[SCAN_PARCHI]]") == ""


def test_append_trigger_once():
    assert append_trigger("Done.", "[[SHOW_ORDER_SUCCESS]]") == "Done. [[SHOW_ORDER_SUCCESS]]"
    assert append_trigger("Done. [[SHOW_ORDER_SUCCESS]]", "[[SHOW_ORDER_SUCCESS]]") == "Done. [[SHOW_ORDER_SUCCESS]]"
    assert append_trigger("Done.", None) == "Done."


def test_format_inr_indian_grouping():
    assert format_inr(450) == "₹450"
    assert format_inr(1234567) == "₹12,34,567"
    assert format_inr(157.5) == "₹157.50"
    assert format_inr(-2500) == "-₹2,500"


def test_format_quantity():
    assert format_quantity(5.0) == "5"
    assert format_quantity(2.5) == "2.5"


def test_order_number_uses_timestamp():
    number = generate_order_number(datetime(2024, 1, 31, 14, 25, 30, 123456))
    assert number == "ORD-20240131-142530-123456"
