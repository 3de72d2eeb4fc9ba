"""
Точка входа в Telemetry Runtime.

Минимальный main: конфигурация из окружения, автозагрузка плагинов
по манифестам, запуск и graceful shutdown по SIGTERM/SIGINT.
"""

import asyncio
import signal

from telemetry_core.config import Config
from telemetry_core.runtime import TelemetryRuntime


async def main():
    """Главная функция запуска Telemetry Runtime."""

    # Загрузить конфигурацию
    config = Config.from_env()

    runtime = TelemetryRuntime(config)

    # Модули регистрируются до загрузки плагинов, чтобы был доступен logger.log
    await runtime.register_modules()
    await runtime.plugin_manager.auto_load_plugins()
    print(f"[Runtime] Плагины загружены: {runtime.plugin_manager.list_plugins()}")

    # Обработка сигналов для graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler():
        """Обработчик сигналов остановки."""
        print("\n[Runtime] Получен сигнал остановки...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        print("[Runtime] Запуск Telemetry Runtime...")
        await runtime.start()
        print("[Runtime] Telemetry Runtime запущен")

        # Ждать сигнала остановки
        await shutdown_event.wait()

    finally:
        print("[Runtime] Остановка Telemetry Runtime...")
        try:
            await asyncio.wait_for(
                runtime.shutdown(),
                timeout=config.shutdown_timeout * 2,
            )
            print("[Runtime] Telemetry Runtime остановлен")
        except asyncio.TimeoutError:
            print("[Runtime] Таймаут при остановке Runtime")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
