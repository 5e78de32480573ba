from profile_gate import check_gate, is_complete, missing_fields, release_intent
from schemas import Address, Identity, PendingIntent, UserProfile
from session import Session


def full_user(**overrides):
    fields = dict(
        name="Asha",
        phone="9876543210",
        address=Address(street="1 MG Road", city="Pune", state="MH", pincode="411001"),
    )
    fields.update(overrides)
    return UserProfile(**fields)


def test_complete_user():
    assert is_complete(full_user())
    assert missing_fields(full_user()) == []


def test_missing_only_pincode_then_fixed():
    user = full_user(address=Address(street="1 MG Road", city="Pune", state="MH", pincode=""))
    assert not is_complete(user)
    assert missing_fields(user) == ["address.pincode"]
    user.address.pincode = "411001"
    assert is_complete(user)


def test_email_and_country_are_optional():
    user = full_user(email=None, address=Address(street="a", city="b", state="c", pincode="d", country=None))
    assert is_complete(user)


def test_blank_strings_do_not_count():
    assert missing_fields(full_user(name="   ", phone=None)) == ["name", "phone"]


def test_backend_flag_is_fast_path():
    assert is_complete(UserProfile(profile_complete=True))


def test_false_flag_falls_back_to_fields():
    assert is_complete(full_user(profile_complete=False))
    assert not is_complete(UserProfile(profile_complete=False))


def test_no_user():
    assert not is_complete(None)
    assert len(missing_fields(None)) == 6


def test_gate_holds_and_releases_intent():
    session = Session(session_id="s", identity=Identity(kind="customer", record=UserProfile(_id="c1", name="N")))
    intent = PendingIntent(kind="cart")
    decision = check_gate(session, intent)
    assert not decision.proceed
    assert "phone" in decision.missing
    assert session.pending_intent == intent
    assert release_intent(session) == intent
    assert session.pending_intent is None
    assert release_intent(session) is None


def test_gate_passes_complete_user():
    session = Session(session_id="s", identity=Identity(kind="user", record=full_user()))
    decision = check_gate(session, PendingIntent(kind="cart"))
    assert decision.proceed
    assert session.pending_intent is None
