# tablecat/main_headless.py
import os, sys, asyncio, signal, logging
from typing import Optional
from .core.config import load_config, ensure_dirs, AppConfig
from .core.event_bus import EventBus
from .core.schemas import AttentionDebugState, TriggerPayload
from .core.validate import validate_config
from .perception.attention_loop import AttentionLoop, AttentionLoopCallbacks
from .perception.idle import InputIdleTracker
from .proactive.responder import ResponseCoordinator
from .relay_server import attach_bus, build_server, mgr
from .utils.log import setup_logging

logger = logging.getLogger(__name__)

ATTENTION_ENV = os.getenv("TABLECAT_ATTENTION", "").strip()

def install_shutdown(stop: asyncio.Event):
    loop = asyncio.get_running_loop()

    def _handler(*_):
        print("\n🛑 Shutting down TableCat attention...")
        loop.call_soon_threadsafe(stop.set)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: _handler())

def build_loop(cfg: AppConfig, bus: EventBus, coordinator: ResponseCoordinator, idle: InputIdleTracker) -> AttentionLoop:
    publishing: set = set()

    def on_debug_state(state: AttentionDebugState):
        task = asyncio.get_running_loop().create_task(bus.publish("attention", state.model_dump()))
        publishing.add(task); task.add_done_callback(publishing.discard)

    return AttentionLoop(
        cfg.screen,
        AttentionLoopCallbacks(
            on_debug_state=on_debug_state,
            on_trigger=coordinator.submit,
            get_response_state=coordinator.get_response_state,
        ),
        log_dir=cfg.paths.log_dir,
        idle_seconds=idle.get_system_idle_seconds,
    )

async def main_async(cfg: AppConfig):
    bus = EventBus()
    stop = asyncio.Event()
    install_shutdown(stop)

    # Model invocation lives with the UI client; the headless process hands payloads to the relay.
    async def publish_trigger(payload: TriggerPayload) -> Optional[str]:
        await bus.publish("triggers", payload.model_dump())
        return None

    coordinator = ResponseCoordinator(publish_trigger, bus, cfg.assistant.bubble_timeout_sec)
    idle = InputIdleTracker()
    idle.start()
    attention = build_loop(cfg, bus, coordinator, idle)

    server_task = None
    if cfg.relay.enabled:
        await attach_bus(bus)
        mgr.summary_provider = attention.summary
        server_task = asyncio.create_task(build_server(cfg.relay.host, cfg.relay.port).serve())
        print(f"[Relay] ws://{cfg.relay.host}:{cfg.relay.port}/ws/<client_id>")

    attention.start()
    print(f"[Headless] attention loop online, tick={cfg.screen.base_tick_ms}ms. Press Ctrl+C to stop.")
    await stop.wait()

    await attention.stop()
    await attention.wait_dispatches()
    idle.stop()
    if server_task:
        server_task.cancel()
        await asyncio.gather(server_task, return_exceptions=True)
    print("✅ Shutdown complete")

def main():
    cfg = load_config()

    # Validate config
    if issues := validate_config(cfg):
        print("\n".join(issues))
        if any("❌" in i for i in issues):
            print("\n❌ Fatal configuration errors. Exiting.")
            sys.exit(1)

    ensure_dirs(cfg)
    setup_logging(cfg.paths.log_dir)

    if not cfg.screen.attention_enabled or ATTENTION_ENV == "0":
        print("Screen attention disabled.")
        return
    asyncio.run(main_async(cfg))

if __name__ == "__main__":
    main()
