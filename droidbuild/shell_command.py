import logging
import os
import subprocess
import traceback


def execute_command(command, cwd=None, timeout=None):
    """
    Execute an SDK tool command and check that it exits with code 0.

    :param command: list - the tool path followed by its arguments.
    :param cwd: str - working directory, defaults to the current one.
    :param timeout: float - optional timeout in seconds.

    :return: tuple - (bool, str) - success flag, stdout on success or the error description otherwise.
    """
    if not cwd:
        cwd = os.getcwd()
    is_success = False
    logging.debug(f"Running command: {command[0]} with parameters: {command[1:]}")
    try:
        result = subprocess.run(command, capture_output=True, text=False, cwd=cwd, timeout=timeout)
        stdout = result.stdout.decode('utf-8', errors='ignore').strip()
        stderr = result.stderr.decode('utf-8', errors='ignore').strip()
        logging.debug(f"Executed command: {command} - {result.returncode}")
        if stderr:
            logging.debug(f"Stderr of {command[0]}: {stderr}")
        if result.returncode == 0:
            is_success = True
            log = stdout
        else:
            log = f"Return code: {result.returncode} with message: {stderr or stdout}"
    except subprocess.TimeoutExpired:
        log = f"Timeout after {timeout}s while executing command: {command}"
    except OSError as e:
        log = (
            f"Exception while executing command: {command}\n"
            f"Working directory: {cwd}\n"
            f"Error: {e}\n"
            f"Stack trace:\n{traceback.format_exc()}"
        )

    return is_success, log
