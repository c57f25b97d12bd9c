import sys

from colorama import Fore, Style

from .i18n import _


def display_banner(version: str) -> None:
    print(Fore.CYAN + f"Hybrid7z v{version}" + Style.RESET_ALL)
    print(_("Phase-routed 7-Zip archiving for mixed-content folders"))
    print()


def read_user_input(prompt: str) -> str:
    try:
        return input(prompt)
    except EOFError:
        return ""


def prompt_exit(no_pause: bool = False) -> None:
    if no_pause or not getattr(sys.stdin, "isatty", lambda: False)():
        return
    try:
        read_user_input(_("\nPress Enter to exit..."))
    except KeyboardInterrupt:
        pass
