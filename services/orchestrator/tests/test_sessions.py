from services.orchestrator.sessions import LanguageSessionStore

HINDI_TEXT = "न्यूटन का दूसरा नियम क्या है"


def test_sessions_do_not_share_language_state() -> None:
    store = LanguageSessionStore()
    store.get("alice").detect(HINDI_TEXT)
    assert store.get("alice").last_detected_language == "hindi"
    assert store.get("bob").last_detected_language is None


def test_anonymous_requests_get_a_fresh_detector() -> None:
    store = LanguageSessionStore()
    first = store.get(None)
    first.detect(HINDI_TEXT)
    assert store.get(None) is not first
    assert len(store) == 0


def test_least_recently_used_session_is_evicted() -> None:
    store = LanguageSessionStore(max_sessions=2)
    store.get("a")
    store.get("b")
    store.get("a")
    store.get("c")
    assert "a" in store
    assert "c" in store
    assert "b" not in store


def test_reset_forgets_session() -> None:
    store = LanguageSessionStore()
    store.get("alice").detect(HINDI_TEXT)
    assert store.reset("alice") is True
    assert store.reset("alice") is False
    assert store.get("alice").last_detected_language is None
