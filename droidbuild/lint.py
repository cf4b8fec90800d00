import logging
import os

from droidbuild.config import LINT_RESULTS_DIR_NAME
from droidbuild.exceptions import BuildExecutionError
from droidbuild.shell_command import execute_command

NULL_CONFIG = "null"
NO_URL = "none"


class LintOptions:
    """
    Options of an Android Lint run. Keys of the "lint" build config section use the same names in camelCase.
    """

    def __init__(self, skip=True, fail_on_error=False, ignore_warnings=False, warn_all=False,
                 warnings_as_errors=False, config=NULL_CONFIG, full_path=False, show_all=True,
                 disable_source_lines=False, url=NO_URL, enable_html=False, html_output_path=None,
                 enable_simple_html=False, simple_html_output_path=None, enable_xml=True, xml_output_path=None,
                 enable_sources=True, sources=None, enable_classpath=False, classpath=None,
                 enable_libraries=False, libraries=None):
        self.skip = skip
        self.fail_on_error = fail_on_error
        self.ignore_warnings = ignore_warnings
        self.warn_all = warn_all
        self.warnings_as_errors = warnings_as_errors
        self.config = config
        self.full_path = full_path
        self.show_all = show_all
        self.disable_source_lines = disable_source_lines
        self.url = url
        self.enable_html = enable_html
        self.html_output_path = html_output_path
        self.enable_simple_html = enable_simple_html
        self.simple_html_output_path = simple_html_output_path
        self.enable_xml = enable_xml
        self.xml_output_path = xml_output_path
        self.enable_sources = enable_sources
        self.sources = sources
        self.enable_classpath = enable_classpath
        self.classpath = classpath
        self.enable_libraries = enable_libraries
        self.libraries = libraries

    @classmethod
    def from_config(cls, lint_config):
        keys = {
            "skip": "skip", "failOnError": "fail_on_error", "ignoreWarnings": "ignore_warnings",
            "warnAll": "warn_all", "warningsAsErrors": "warnings_as_errors", "config": "config",
            "fullPath": "full_path", "showAll": "show_all", "disableSourceLines": "disable_source_lines",
            "url": "url", "enableHtml": "enable_html", "htmlOutputPath": "html_output_path",
            "enableSimpleHtml": "enable_simple_html", "simpleHtmlOutputPath": "simple_html_output_path",
            "enableXml": "enable_xml", "xmlOutputPath": "xml_output_path", "enableSources": "enable_sources",
            "sources": "sources", "enableClasspath": "enable_classpath", "classpath": "classpath",
            "enableLibraries": "enable_libraries", "libraries": "libraries",
        }
        kwargs = {}
        for key, value in (lint_config or {}).items():
            if key not in keys:
                logging.warning(f"Unknown lint option {key} ignored")
                continue
            kwargs[keys[key]] = value
        return cls(**kwargs)


def _report_path(build_directory, name):
    report_path = os.path.join(os.path.abspath(build_directory), LINT_RESULTS_DIR_NAME, name)
    os.makedirs(os.path.dirname(report_path), exist_ok=True)
    return report_path


def build_lint_command(lint_path, options, project_dir, build_directory=None, source_directory=None,
                       output_directory=None, library_files=None):
    """
    Builds the lint command line.

    :param lint_path: str - path to the lint tool.
    :param options: LintOptions - the lint configuration.
    :param project_dir: str - project base directory, analysed by lint.
    :param build_directory: str - default location of the reports, defaults to <project_dir>/target.
    :param source_directory: str - default for --sources.
    :param output_directory: str - default for --classpath.
    :param library_files: list - default for --libraries.
    :return: list - the command.
    """
    build_directory = build_directory or os.path.join(project_dir, "target")
    command = [lint_path]
    if options.ignore_warnings:
        command.append("-w")
    if options.warn_all:
        command.append("-Wall")
    if options.warnings_as_errors:
        command.append("-Werror")
    if options.config is not None and options.config != NULL_CONFIG:
        command += ["--config", options.config]
    if options.full_path:
        command.append("--fullpath")
    if options.show_all:
        command.append("--showall")
    if options.disable_source_lines:
        command.append("--nolines")
    if options.enable_html:
        html_output_path = options.html_output_path or _report_path(build_directory, "lint-results-html")
        command += ["--html", html_output_path]
        logging.info(f"Writing Lint HTML report in {html_output_path}")
    if options.url is not None and options.url != NO_URL:
        command += ["--url", options.url]
    if options.enable_simple_html:
        simple_html_output_path = options.simple_html_output_path or \
            _report_path(build_directory, "lint-results-simple-html")
        command += ["--simplehtml", simple_html_output_path]
        logging.info(f"Writing Lint simple HTML report in {simple_html_output_path}")
    if options.enable_xml:
        xml_output_path = options.xml_output_path or _report_path(build_directory, "lint-results.xml")
        command += ["--xml", xml_output_path]
        logging.info(f"Writing Lint XML report in {xml_output_path}")
    if options.enable_sources:
        sources = options.sources or os.path.abspath(source_directory or os.path.join(project_dir, "src"))
        command += ["--sources", sources]
    if options.enable_classpath:
        classpath = options.classpath or os.path.abspath(output_directory or os.path.join(build_directory, "classes"))
        command += ["--classpath", classpath]
    if options.enable_libraries:
        libraries = options.libraries or os.pathsep.join(library_files or [])
        if libraries:
            command += ["--libraries", libraries]

    command.append(os.path.abspath(project_dir))
    command.append("--exitcode")
    return command


def run_lint(lint_path, options, project_dir, **kwargs):
    """
    Runs Android Lint on the project.

    :return: bool - False if lint was skipped or reported errors, True otherwise.
    """
    logging.debug(f"Parsed values for Android Lint invocation: {vars(options)}")
    if options.skip:
        logging.info("Skipping lint analysis.")
        return False

    logging.info("Performing lint analysis.")
    command = build_lint_command(lint_path, options, project_dir, **kwargs)
    logging.info(f"Running command: {command[0]} with parameters: {command[1:]}")
    success, log_message = execute_command(command)
    if not success:
        if options.fail_on_error:
            logging.info("Lint analysis produced errors and project is configured to fail on error.")
            raise BuildExecutionError(f"Lint analysis failed: {log_message}")
        logging.warning(f"Lint analysis produced errors: {log_message}")
        return False
    logging.info("Lint analysis completed successfully.")
    return True
