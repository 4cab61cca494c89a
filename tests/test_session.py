"""Tests for conversation sessions and the session manager."""

import asyncio
import io
from datetime import datetime, timedelta

import pytest
from PIL import Image

from kuber.config import GREETINGS
from kuber.core import session as session_module
from kuber.core.exceptions import SessionException
from kuber.core.session import OFFLINE_ERROR, ConversationSession, SessionManager
from kuber.services.llm import LLMResponse
from kuber.services.vision import ParchiScanner, VisionExtractor
from kuber.services.vision.preprocess import encode_data_url
from kuber.tools.parchi import SCAN_NO_ITEMS, SCAN_UNREADABLE
from kuber.tools.registry import ActionRouter


def photo():
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), (250, 250, 250)).save(buffer, format="JPEG")
    return encode_data_url(buffer.getvalue())


class ReadyLocal:
    """On-device model that loads fine."""

    def __init__(self):
        self.is_loaded = False
        self.unloads = 0

    async def load(self):
        self.is_loaded = True

    def unload(self):
        self.unloads += 1
        self.is_loaded = False

    async def complete(self, messages, temperature=None, max_tokens=None):
        return LLMResponse(content="Local jawab", source="local")


async def new_session(store, language="hinglish", **kwargs):
    router = ActionRouter(store)
    await router.initialize()
    session = ConversationSession(router, language=language, **kwargs)
    await session.initialize()
    return session


def test_session_starts_with_greeting_on_cloud(run_db, make_llm):
    async def scenario(store):
        return await new_session(store, cloud=make_llm())

    session = run_db(scenario)
    assert session.use_cloud is True
    assert session.is_model_ready is True
    assert [m.content for m in session.messages] == [GREETINGS["hinglish"]]


def test_session_prefers_loaded_local_model(run_db, make_llm):
    async def scenario(store):
        return await new_session(store, cloud=make_llm(), local=ReadyLocal())

    session = run_db(scenario)
    assert session.use_cloud is False
    assert session.to_dict()["model"] == "local"


def test_session_without_language_has_no_greeting(run_db, make_llm):
    async def scenario(store):
        return await new_session(store, language=None, cloud=make_llm())

    assert run_db(scenario).messages == []


def test_set_language_resets_history(run_db, make_llm, seed):
    async def scenario(store):
        await seed(store)
        session = await new_session(store, cloud=make_llm())
        await session.send_message("Stock check karo atta")
        session.set_language("en")
        with pytest.raises(SessionException):
            session.set_language("klingon")
        return session

    session = run_db(scenario)
    assert session.selected_language == "en"
    assert [m.content for m in session.messages] == [GREETINGS["en"]]
    assert session.context.last_product is None


def test_send_message_routes_to_action(run_db, make_llm, seed):
    heard = []

    async def scenario(store):
        await seed(store)
        session = await new_session(store, cloud=make_llm())
        session.subscribe(heard.append)
        reply = await session.send_message("  Stock check karo atta ")
        return session, reply

    session, reply = run_db(scenario)
    assert reply.role == "assistant"
    assert reply.content == "Aashirvaad Atta: 5 kg available. Stock kam hai! [[SHOW_INVENTORY_CARD]]"
    assert [m.role for m in session.messages] == ["assistant", "user", "assistant"]
    assert session.messages[1].content == "Stock check karo atta"
    assert session.context.last_product == "Aashirvaad Atta"
    assert session.context.last_intent.value == "INVENTORY_CHECK"
    assert session.turn_count == 1
    assert session.is_thinking is False
    assert heard == [reply]


@pytest.mark.parametrize("text", [None, "", "   "])
def test_blank_messages_are_ignored(run_db, make_llm, text):
    async def scenario(store):
        session = await new_session(store, cloud=make_llm())
        return session, await session.send_message(text)

    session, reply = run_db(scenario)
    assert reply is None
    assert len(session.messages) == 1


def test_busy_or_unready_session_ignores_messages(run_db, make_llm):
    async def scenario(store):
        router = ActionRouter(store)
        unready = ConversationSession(router, language="en", cloud=make_llm())
        first = await unready.send_message("stock dikhao")

        busy = await new_session(store, cloud=make_llm())
        busy.is_thinking = True
        second = await busy.send_message("stock dikhao")
        return first, second, busy

    first, second, busy = run_db(scenario)
    assert first is None
    assert second is None
    assert len(busy.messages) == 1


def test_unknown_intent_is_answered_by_model(run_db, make_llm, seed):
    llm = make_llm(reply="Mithai aur dry fruits ka stock badhaiye.")

    async def scenario(store):
        await seed(store)
        session = await new_session(store, cloud=llm)
        await session.send_message("Stock check karo atta")
        return await session.send_message("Diwali ke liye kya rakhun?")

    reply = run_db(scenario)
    assert reply.content == "Mithai aur dry fruits ka stock badhaiye."
    sent = llm.calls[-1]
    assert sent[-1] == {"role": "user", "content": "Diwali ke liye kya rakhun?"}
    assert all("[[" not in m["content"] for m in sent)


def test_model_failure_on_open_question_uses_help_text(run_db, make_llm):
    async def scenario(store):
        session = await new_session(store, cloud=make_llm(fail=True))
        return await session.send_message("namaste")

    reply = run_db(scenario)
    assert reply.content.startswith("Namaste! Main Kuber AI hoon.")


def test_model_routing_appends_intent_context(run_db, make_llm, monkeypatch):
    monkeypatch.setattr(session_module.settings, "INTENT_ROUTING", "model")
    llm = make_llm(reply="Atta 5 kg bacha hai. [[SHOW_INVENTORY_CARD]]")

    async def scenario(store):
        session = await new_session(store, cloud=llm)
        return await session.send_message("Stock check karo atta")

    reply = run_db(scenario)
    assert reply.content == "Atta 5 kg bacha hai. [[SHOW_INVENTORY_CARD]]"
    last = llm.calls[-1][-1]["content"]
    assert last.startswith("Stock check karo atta\n[CONTEXT: User wants to check stock.")
    assert "[[SHOW_INVENTORY_CARD]]" in last


def test_model_routing_failure_sets_offline_error(run_db, make_llm, monkeypatch):
    monkeypatch.setattr(session_module.settings, "INTENT_ROUTING", "model")

    async def scenario(store):
        session = await new_session(store, cloud=make_llm(fail=True))
        return session, await session.send_message("Is hafte ka profit dikhao")

    session, reply = run_db(scenario)
    assert reply is None
    assert session.error == OFFLINE_ERROR
    assert session.messages[-1].role == "user"
    assert session.is_thinking is False


def test_retry_load_model_goes_through_initialize(run_db, make_llm):
    local = ReadyLocal()

    async def scenario(store):
        session = await new_session(store, cloud=make_llm(), local=local)
        session.error = OFFLINE_ERROR
        await session.retry_load_model()
        return session

    session = run_db(scenario)
    assert local.unloads == 1
    assert session.error is None
    assert session.use_cloud is False
    assert session.is_model_ready


def test_parchi_scan_posts_summary(run_db, make_llm, make_ocr, make_image_source):
    ocr = make_ocr("Atta - 10 kg - 450\nSugar - 2 kg - 90\nTotal 540")
    source = make_image_source(photo())

    async def scenario(store):
        session = await new_session(
            store,
            cloud=make_llm(),
            scanner=ParchiScanner(vision=VisionExtractor(client=None), ocr=ocr),
            image_source=source
        )
        reply = await session.send_message("parchi scan karo")
        await session.wait_for_scan()
        return session, reply

    session, reply = run_db(scenario)
    assert reply.content == "Camera opening for parchi scan... [[SCAN_PARCHI]]"
    assert session.messages[-1].content == "Parchi se 2 items mile: Atta (10), Sugar (2). Order banaoon?"
    assert session.last_parchi.total_amount == 540
    assert session.last_parchi.source == "ocr"
    assert session.is_scanning is False
    assert source.captures == 1


def test_unreadable_parchi_gets_apology(run_db, make_llm, make_ocr, make_image_source):
    async def scenario(store):
        session = await new_session(
            store,
            cloud=make_llm(),
            scanner=ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr(fail=True)),
            image_source=make_image_source(photo())
        )
        await session.send_message("bill ki photo lo")
        await session.wait_for_scan()
        return session

    session = run_db(scenario)
    assert session.messages[-1].content == "Sorry, parchi read nahi ho rahi. Clear photo lein."
    assert session.last_parchi is None


def test_parchi_without_items_is_not_reported_as_unreadable(run_db, make_llm, make_ocr, make_image_source):
    async def scenario(store):
        session = await new_session(
            store,
            cloud=make_llm(),
            scanner=ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr("Shree Ganesh Traders")),
            image_source=make_image_source(photo())
        )
        await session.send_message("parchi scan karo")
        await session.wait_for_scan()
        return session

    session = run_db(scenario)
    assert session.messages[-1].content == SCAN_NO_ITEMS
    assert session.messages[-1].content != SCAN_UNREADABLE
    assert session.last_parchi is not None
    assert session.last_parchi.items == []


def test_cancelled_capture_adds_nothing(run_db, make_llm, make_ocr, make_image_source):
    ocr = make_ocr("Atta - 10 kg - 450")

    async def scenario(store):
        session = await new_session(
            store,
            cloud=make_llm(),
            scanner=ParchiScanner(vision=VisionExtractor(client=None), ocr=ocr),
            image_source=make_image_source(None)
        )
        await session.send_message("parchi scan karo")
        await session.wait_for_scan()
        return session

    session = run_db(scenario)
    assert session.messages[-1].content.startswith("Camera opening")
    assert ocr.images == []


def test_scan_without_camera_is_unavailable(run_db, make_llm):
    async def scenario(store):
        session = await new_session(store, cloud=make_llm())
        return await session.send_message("parchi scan karo")

    assert run_db(scenario).content == "Camera abhi available nahi hai. Parchi ki photo upload karein."


def test_history_for_model_strips_triggers(run_db, make_llm, seed):
    async def scenario(store):
        await seed(store)
        session = await new_session(store, cloud=make_llm())
        await session.send_message("Stock check karo atta")
        return session.history_for_model()

    history = run_db(scenario)
    assert history[-1] == {"role": "assistant", "content": "Aashirvaad Atta: 5 kg available. Stock kam hai!"}


def make_manager(store, llm_factory):
    router = ActionRouter(store)

    def factory(session_id, language):
        return ConversationSession(router, session_id=session_id, language=language, cloud=llm_factory())

    return SessionManager(factory)


def test_manager_create_get_delete(run_db, make_llm):
    async def scenario(store):
        manager = make_manager(store, make_llm)
        await manager.start()
        created = await manager.create_session(language="en")
        found = await manager.get_session(created.session_id)
        same = await manager.get_or_create_session(created.session_id)
        fresh = await manager.get_or_create_session("abc-123", "hi")
        count = await manager.get_active_session_count()
        deleted = await manager.delete_session(created.session_id)
        missing = await manager.get_session(created.session_id)
        await manager.stop()
        return created, found, same, fresh, count, deleted, missing

    created, found, same, fresh, count, deleted, missing = run_db(scenario)
    assert found is created
    assert same is created
    assert fresh.session_id == "abc-123"
    assert fresh.selected_language == "hi"
    assert count == 2
    assert deleted is True
    assert missing is None


def test_manager_uses_default_language(run_db, make_llm):
    async def scenario(store):
        manager = make_manager(store, make_llm)
        session = await manager.create_session()
        await manager.stop()
        return session

    assert run_db(scenario).selected_language == "hinglish"


def test_manager_drops_expired_sessions(run_db, make_llm):
    async def scenario(store):
        manager = make_manager(store, make_llm)
        session = await manager.create_session()
        session.last_activity = datetime.now() - timedelta(hours=2)
        found = await manager.get_session(session.session_id)
        await manager.stop()
        return found

    assert run_db(scenario) is None


def test_manager_evicts_least_recent(run_db, make_llm, monkeypatch):
    monkeypatch.setattr(session_module.settings, "MAX_SESSIONS", 2)

    async def scenario(store):
        manager = make_manager(store, make_llm)
        first = await manager.create_session("first")
        second = await manager.create_session("second")
        first.last_activity = datetime.now()
        second.last_activity = datetime.now() - timedelta(minutes=5)
        await manager.create_session("third")
        result = (
            await manager.get_session("first"),
            await manager.get_session("second"),
            await manager.get_session("third"),
        )
        await manager.stop()
        return first, result

    first, (kept, evicted, third) = run_db(scenario)
    assert kept is first
    assert evicted is None
    assert third is not None


def test_stop_closes_running_scan(run_db, make_llm, make_ocr):
    class SlowCamera:
        async def capture(self):
            await asyncio.sleep(3600)

    async def scenario(store):
        session = await new_session(
            store,
            cloud=make_llm(),
            scanner=ParchiScanner(vision=VisionExtractor(client=None), ocr=make_ocr()),
            image_source=SlowCamera()
        )
        assert session.request_parchi_scan() is True
        assert session.request_parchi_scan() is True
        await asyncio.sleep(0)
        await session.close()
        return session

    session = run_db(scenario)
    assert session.is_scanning is False
