"""Entry point: delegates to CLI app (serve, subscription commands, validate-config)."""

from rich.traceback import install

from graph_events.cli import app


def main() -> None:
    install(show_locals=False, max_frames=5, word_wrap=True)
    app()


if __name__ == "__main__":
    main()
