"""Build event migration.

``PreBuildEvent`` / ``PostBuildEvent`` properties become ``PreBuild`` /
``PostBuild`` targets of ``Exec`` tasks with Visual Studio macros
rewritten to MSBuild properties.
"""

import logging
import re
from typing import List, Optional, Tuple

from ...project_model import ProjectModel
from ..models import ChangeLog
from ..target import GeneratedTarget, TargetTask

logger = logging.getLogger(__name__)

# Visual Studio build-event macro -> MSBuild equivalent.
_MACRO_REPLACEMENTS: Tuple[Tuple[str, str], ...] = (
    ("$(SolutionDir)", "$(MSBuildProjectDirectory)/../"),
    ("$(ProjectDir)", "$(MSBuildProjectDirectory)/"),
    ("$(TargetDir)", "$(OutputPath)"),
    ("$(TargetPath)", "$(TargetPath)"),
    ("$(TargetName)", "$(AssemblyName)"),
    ("$(ConfigurationName)", "$(Configuration)"),
    ("$(PlatformName)", "$(Platform)"),
    ("$(OutDir)", "$(OutputPath)"),
)

_COMMAND_SPLIT = re.compile(r"\r?\n|&&")
_COPY_COMMAND = re.compile(r"^\s*(xcopy|copy|robocopy)\b", re.IGNORECASE)
_NOISE_COMMAND = re.compile(r"^\s*(echo|rem)\b", re.IGNORECASE)

_POST_BUILD_CONDITIONS = {
    "OnBuildSuccess": "'$(MSBuildLastTaskResult)' == 'true'",
    "OnOutputUpdated": "'$(_AssemblyTimestampBeforeCompile)' != '$(_AssemblyTimestampAfterCompile)'",
}


def _rewrite_macros(command: str) -> str:
    for macro, replacement in _MACRO_REPLACEMENTS:
        command = command.replace(macro, replacement)
    return command.replace("\\", "/")


def _exec_tasks(script: str, log: ChangeLog, event: str) -> Tuple[TargetTask, ...]:
    tasks: List[TargetTask] = []
    for raw in _COMMAND_SPLIT.split(script):
        command = raw.strip()
        if not command:
            continue
        if _COPY_COMMAND.match(command):
            log.warn(
                f"{event}: '{command.split()[0]}' command could be replaced by the MSBuild Copy task"
            )
        attributes = [
            ("Command", _rewrite_macros(command)),
            ("WorkingDirectory", "$(MSBuildProjectDirectory)"),
        ]
        if _NOISE_COMMAND.match(command):
            attributes.append(("ContinueOnError", "true"))
        tasks.append(TargetTask(name="Exec", attributes=tuple(attributes)))
    return tuple(tasks)


def migrate_build_events(model: ProjectModel, log: ChangeLog) -> List[GeneratedTarget]:
    """Build ``PreBuild``/``PostBuild`` targets from legacy event properties."""
    targets: List[GeneratedTarget] = []

    pre = model.get_property("PreBuildEvent").strip()
    if pre:
        tasks = _exec_tasks(pre, log, "PreBuildEvent")
        if tasks:
            targets.append(GeneratedTarget(
                name="PreBuild",
                attributes=(("BeforeTargets", "PreBuildEvent"),),
                tasks=tasks,
            ))
            log.removed("Property: PreBuildEvent (migrated to PreBuild target)")

    post = model.get_property("PostBuildEvent").strip()
    if post:
        tasks = _exec_tasks(post, log, "PostBuildEvent")
        if tasks:
            attributes: List[Tuple[str, str]] = [("AfterTargets", "PostBuildEvent")]
            condition: Optional[str] = _POST_BUILD_CONDITIONS.get(
                model.get_property("RunPostBuildEvent")
            )
            if condition:
                attributes.append(("Condition", condition))
            targets.append(GeneratedTarget(
                name="PostBuild",
                attributes=tuple(attributes),
                tasks=tasks,
            ))
            log.removed("Property: PostBuildEvent (migrated to PostBuild target)")

    if targets:
        logger.debug("Migrated %d build event(s) in %s", len(targets), model.path)
    return targets
