"""
messages 모듈 테스트
"""

from datetime import datetime, timezone
from safeguard.core.models import Contact, Profile
from safeguard.core.messages import (
    emergency_message, location_update_message, maps_url, order_contacts,
    safety_message, EMERGENCY_NUMBERS
)
from fakes import point

WHEN = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestMessages:
    """안내 문구 생성 테스트"""

    def test_maps_url(self):
        assert maps_url(point(37.5, 127.0)) == "https://maps.google.com/?q=37.5,127.0"

    def test_emergency_message(self):
        profile = Profile(user_id="u1", name="Alex")
        text = emergency_message(point(37.5, 127.0), profile, when=WHEN)
        assert text.startswith("EMERGENCY ALERT: Alex needs immediate help!")
        assert "Location: 37.500000, 127.000000" in text
        assert "Time: 2024-06-01 12:00:00 UTC" in text
        assert f"Police: {EMERGENCY_NUMBERS['police']}" in text

    def test_emergency_message_template(self):
        profile = Profile(user_id="u1", name="Alex")
        assert emergency_message(point(0, 0), profile, when=WHEN, template="medical").startswith("MEDICAL EMERGENCY")
        assert emergency_message(point(0, 0), profile, when=WHEN, template="other").startswith("EMERGENCY: I need help")

    def test_location_update_message(self):
        text = location_update_message(point(1, 2), WHEN)
        assert text.startswith("LOCATION UPDATE: I am now at 1.000000, 2.000000")

    def test_safety_message_unknown_level(self):
        assert "unknown" in safety_message("volcano")
        assert "safe zone" in safety_message("safe")

    def test_order_contacts_primary_first(self, contacts):
        ordered = order_contacts(contacts)
        assert [c.id for c in ordered] == ["c1", "c2"]

    def test_order_contacts_stable(self):
        contacts = [Contact(id=str(i), name=f"n{i}", phone_number="1", is_primary=i % 2 == 0) for i in range(5)]
        assert [c.id for c in order_contacts(contacts)] == ["0", "2", "4", "1", "3"]
