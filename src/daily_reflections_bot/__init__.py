"""
Daily Reflections Bot - posts the day's reflection to Discord.

The bot fetches each day's reflection from a public API, caches it in a
database, and delivers it as a Discord embed:

- to every configured webhook on a daily schedule
- in reply to the ``/reflections`` slash command

Example:
    ```python
    from daily_reflections_bot.main import main

    if __name__ == "__main__":
        main()
    ```
"""

__version__ = "0.1.0"


def main():
    """Main entry point for the Daily Reflections Bot."""
    from daily_reflections_bot.main import main as _main
    return _main()


__all__ = ["main", "__version__"]
