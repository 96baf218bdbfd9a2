"""Interactive prompt utilities"""

from .logging import log_prompt, log_error


def prompt_yes_no(prompt, default=False):
    """
    Interactive yes/no prompt

    Args:
        prompt: Question to ask
        default: Answer used when the user just presses Enter

    Returns:
        bool: True for yes, False for no
    """
    hint = "[Y/n]" if default else "[y/N]"
    while True:
        log_prompt(f"{prompt} {hint}: ")
        response = input().strip().lower()

        if not response:
            return default
        if response in ['y', 'yes']:
            return True
        elif response in ['n', 'no']:
            return False
        else:
            log_error("Please answer yes or no.")
