"""
Tests for identity resolution.
"""
from wamirror.core.models import ContactInfo, GroupInfo, Participant
from wamirror.services.identity import IdentityResolver


class TestResolveSenderName:
    """Ranking of name sources for message senders."""

    def test_mapping_wins(self, temp_store, resolver, transport):
        temp_store.store_identity_mapping("lid1", name="Mapped Name")
        transport.contacts["lid1@lid"] = ContactInfo(full_name="Directory Name")

        assert resolver.resolve_sender_name("lid1", "lid1@lid", "Push") == "Mapped Name"

    def test_stored_chat_name_before_directory(self, temp_store, resolver, transport):
        temp_store.ensure_chat("111@s.whatsapp.net", "Stored Alice")
        transport.contacts["111@s.whatsapp.net"] = ContactInfo(full_name="Directory Alice")

        assert resolver.resolve_sender_name("111", "111@s.whatsapp.net", "Push") == "Stored Alice"

    def test_placeholder_chat_name_is_skipped(self, temp_store, resolver, transport):
        temp_store.ensure_chat("111@s.whatsapp.net", "111")
        transport.contacts["111@s.whatsapp.net"] = ContactInfo(business_name="Alice's Bakery")

        assert resolver.resolve_sender_name("111", "111@s.whatsapp.net") == "Alice's Bakery"

    def test_directory_by_phone_identifier(self, resolver, transport):
        transport.contacts["222@s.whatsapp.net"] = ContactInfo(push_name="Bobby")

        assert resolver.resolve_sender_name("222", "222:3@s.whatsapp.net") == "Bobby"

    def test_push_name_fallback(self, resolver):
        assert resolver.resolve_sender_name("333", "333@s.whatsapp.net", "Carol") == "Carol"
        assert resolver.resolve_sender_name("333", "333@s.whatsapp.net") == ""

    def test_directory_failure_is_not_found(self, resolver, transport):
        transport.fail_lookups = True
        assert resolver.resolve_sender_name("444", "444@s.whatsapp.net", "Dave") == "Dave"


class TestChatNames:
    """Display names and placeholder handling for chats."""

    def test_chat_display_name_order(self, temp_store, resolver, transport):
        assert resolver.chat_display_name("555@s.whatsapp.net", "Hint") == "Hint"
        assert resolver.chat_display_name("555@s.whatsapp.net") == "555"
        assert resolver.chat_display_name("120363@g.us") == "Group 120363"

        transport.groups["120363@g.us"] = GroupInfo(identifier="120363@g.us", name="Book Club")
        assert resolver.chat_display_name("120363@g.us", "Hint") == "Book Club"

        temp_store.ensure_chat("555@s.whatsapp.net", "Stored")
        assert resolver.chat_display_name("555@s.whatsapp.net", "Hint") == "Stored"

    def test_preferred_name(self, resolver, transport):
        transport.contacts["666@s.whatsapp.net"] = ContactInfo(full_name="Eve")

        assert resolver.preferred_name("666@s.whatsapp.net") == "Eve"
        assert resolver.preferred_name("777@s.whatsapp.net") == "777"
        assert resolver.preferred_name("999@g.us") == "Group 999"

    def test_resolver_without_transport(self, temp_store):
        resolver = IdentityResolver(temp_store)
        assert resolver.directory_name("111@s.whatsapp.net") == ""
        assert resolver.chat_display_name("111@s.whatsapp.net") == "111"


class TestBackfill:
    """Upgrading unresolved chat names."""

    def test_backfill_upgrades_placeholders(self, temp_store, resolver, transport):
        temp_store.ensure_chat("111@s.whatsapp.net", "")
        temp_store.ensure_chat("222@s.whatsapp.net", "222")
        temp_store.ensure_chat("120363@g.us", "Group 120363")
        temp_store.ensure_chat("333@s.whatsapp.net", "Already Named")
        temp_store.ensure_chat("444@s.whatsapp.net", "444")

        transport.contacts["111@s.whatsapp.net"] = ContactInfo(full_name="Alice")
        transport.contacts["222@s.whatsapp.net"] = ContactInfo(full_name="Bob")
        transport.contacts["333@s.whatsapp.net"] = ContactInfo(full_name="Not Used")
        transport.groups["120363@g.us"] = GroupInfo(identifier="120363@g.us", name="Book Club")

        assert resolver.backfill_chat_names() == 3
        assert temp_store.get_chat_name("111@s.whatsapp.net") == "Alice"
        assert temp_store.get_chat_name("222@s.whatsapp.net") == "Bob"
        assert temp_store.get_chat_name("120363@g.us") == "Book Club"
        assert temp_store.get_chat_name("333@s.whatsapp.net") == "Already Named"
        # no directory entry: placeholder kept, never cleared
        assert temp_store.get_chat_name("444@s.whatsapp.net") == "444"

    def test_backfill_is_stable(self, temp_store, resolver, transport):
        temp_store.ensure_chat("111@s.whatsapp.net", "111")
        transport.contacts["111@s.whatsapp.net"] = ContactInfo(full_name="Alice")

        assert resolver.backfill_chat_names() == 1
        assert resolver.backfill_chat_names() == 0


class TestParticipants:

    def test_record_participants(self, temp_store, resolver):
        recorded = resolver.record_participants([
            Participant(identifier="lid1@lid", secondary_id="lid1@lid",
                        phone="447700900123@s.whatsapp.net", display_name="Alice"),
            Participant(identifier="222@s.whatsapp.net"),
        ])

        assert recorded == 1
        mapping = temp_store.get_identity_mapping("lid1")
        assert mapping.phone == "447700900123"
        assert mapping.name == "Alice"

    def test_group_lookup_records_participants(self, temp_store, resolver, transport):
        transport.groups["120363@g.us"] = GroupInfo(
            identifier="120363@g.us",
            name="Book Club",
            participants=[Participant(secondary_id="lid5@lid", phone="555@s.whatsapp.net")],
        )

        assert resolver.directory_name("120363@g.us") == "Book Club"
        assert temp_store.get_identity_mapping("lid5").phone == "555"

    def test_record_identity_never_clobbers(self, temp_store, resolver):
        resolver.record_identity("lid1", phone="123", name="Alice")
        resolver.record_identity("lid1", phone="", name="")
        mapping = temp_store.get_identity_mapping("lid1")
        assert (mapping.phone, mapping.name) == ("123", "Alice")
