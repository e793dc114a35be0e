import unittest
from datetime import date, datetime, timezone

from services.errors import MeetingValidationError, NoAvailableSlotError
from services.time_slots import (
    TIME_SLOTS,
    available_time_slots,
    default_meeting_window,
    first_available_slot,
    format_display_time,
    get_zone,
    is_supported_timezone,
)

TODAY = date(2025, 3, 10)


def _utc(hour, minute, day=10):
    return datetime(2025, 3, day, hour, minute, tzinfo=timezone.utc)


class TimeSlotGridTests(unittest.TestCase):
    def test_grid_has_96_quarter_hour_slots(self):
        self.assertEqual(len(TIME_SLOTS), 96)
        self.assertEqual(TIME_SLOTS[0], "00:00")
        self.assertEqual(TIME_SLOTS[1], "00:15")
        self.assertEqual(TIME_SLOTS[-1], "23:45")

    def test_display_labels_use_12_hour_clock(self):
        self.assertEqual(format_display_time("00:00"), "12:00 AM")
        self.assertEqual(format_display_time("09:05"), "9:05 AM")
        self.assertEqual(format_display_time("12:30"), "12:30 PM")
        self.assertEqual(format_display_time("23:45"), "11:45 PM")

    def test_supported_timezones(self):
        self.assertTrue(is_supported_timezone("Europe/Berlin"))
        self.assertFalse(is_supported_timezone("Mars/Olympus"))


class AvailableSlotTests(unittest.TestCase):
    def test_no_date_returns_every_slot(self):
        self.assertEqual(available_time_slots(None, _utc(14, 7)), TIME_SLOTS)

    def test_other_day_returns_every_slot(self):
        self.assertEqual(available_time_slots(date(2025, 3, 11), _utc(14, 7)), TIME_SLOTS)

    def test_today_only_keeps_slots_after_now(self):
        slots = available_time_slots(TODAY, _utc(14, 7), tz="UTC")
        self.assertEqual(slots[0], "14:15")
        self.assertNotIn("14:00", slots)
        self.assertEqual(slots[-1], "23:45")

    def test_slot_equal_to_now_is_excluded(self):
        slots = available_time_slots(TODAY, _utc(14, 15), tz="UTC")
        self.assertEqual(slots[0], "14:30")

    def test_today_is_judged_in_the_selected_zone(self):
        # 13:07 UTC is 14:07 in Berlin before the March DST switch.
        slots = available_time_slots(TODAY, _utc(13, 7), tz="Europe/Berlin")
        self.assertEqual(slots[0], "14:15")

    def test_unknown_zone_is_rejected(self):
        with self.assertRaises(MeetingValidationError):
            available_time_slots(TODAY, _utc(13, 7), tz="Europe/Berln")
        with self.assertRaises(MeetingValidationError):
            get_zone("Not/AZone")
        self.assertEqual(str(get_zone(None)), "UTC")

    def test_end_slots_on_start_day_follow_start_time(self):
        tomorrow = date(2025, 3, 11)
        slots = available_time_slots(
            tomorrow,
            _utc(14, 7),
            field="end",
            start_date=tomorrow,
            start_time="09:00",
        )
        self.assertEqual(slots[0], "09:15")
        self.assertNotIn("09:00", slots)

    def test_end_slots_on_later_day_ignore_start_time(self):
        slots = available_time_slots(
            date(2025, 3, 12),
            _utc(14, 7),
            field="end",
            start_date=date(2025, 3, 11),
            start_time="09:00",
        )
        self.assertEqual(slots, TIME_SLOTS)

    def test_late_evening_has_no_slot_left(self):
        now = _utc(23, 50)
        self.assertEqual(available_time_slots(TODAY, now, tz="UTC"), [])
        with self.assertRaises(NoAvailableSlotError):
            first_available_slot(TODAY, now, tz="UTC")

    def test_first_available_slot(self):
        self.assertEqual(first_available_slot(TODAY, _utc(8, 59), tz="UTC"), "09:00")


class DefaultWindowTests(unittest.TestCase):
    def test_rounds_up_then_adds_a_quarter_hour(self):
        start, end = default_meeting_window(_utc(10, 7))
        self.assertEqual(start, _utc(10, 30))
        self.assertEqual(end, _utc(11, 30))

    def test_on_the_quarter(self):
        start, _ = default_meeting_window(_utc(10, 0))
        self.assertEqual(start, _utc(10, 15))

    def test_rolls_into_next_hour(self):
        start, end = default_meeting_window(_utc(10, 50))
        self.assertEqual(start, _utc(11, 15))
        self.assertEqual(end, _utc(12, 15))


if __name__ == "__main__":
    unittest.main()
