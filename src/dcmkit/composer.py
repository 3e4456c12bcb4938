"""Composite operations: build a setting, merge it, add a rule for it.

Every operation runs in one of two modes, chosen by the caller:

* :class:`DirectMode` works on a copy of a store-held document and commits
  it once, after every step succeeded.
* :class:`TransformMode` works on a raw document and returns the updated
  text without touching any external state.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .exceptions import InputValidationError, StoreUnavailableError
from .fragments import parse_document, serialize_document
from .merger import ArtifactMerger
from .models import (
    ComposerConfig,
    CompositionResult,
    RegistryValue,
    RuleSpec,
    ScriptRequest,
    Setting,
    SettingReference,
    SourceArtifactIdentity,
)
from .normalize import native_data_type
from .rules import RuleBuilder
from .scripts import RegistryScriptSynthesizer
from .settings import SettingBuilder, registry_setting_from_value, script_setting_from_request
from .store import ArtifactStore, DocumentHandle

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class DirectMode:
    """Mutate a store-held document and commit it."""

    handle: DocumentHandle
    store: ArtifactStore


@dataclass(frozen=True)
class TransformMode:
    """Return the updated document instead of committing it."""

    document: str
    source_identity: str


ExecutionMode = Union[DirectMode, TransformMode]


@dataclass
class _Workspace:
    """In-memory document being composed plus the builders bound to it."""

    root: ET.Element
    merger: ArtifactMerger
    rules: RuleBuilder
    config: ComposerConfig
    result: CompositionResult = field(default_factory=CompositionResult)
    settings: SettingBuilder = field(default_factory=SettingBuilder)
    synthesizer: RegistryScriptSynthesizer = field(default_factory=RegistryScriptSynthesizer)


def _open(mode: ExecutionMode, config: ComposerConfig) -> _Workspace:
    if isinstance(mode, DirectMode):
        if not config.site_code:
            msg = "Direct mode requires a site code in the composer configuration"
            raise StoreUnavailableError(msg)
        if not mode.store.is_available(config.site_code):
            msg = f"Configuration item store is not available for site {config.site_code}"
            raise StoreUnavailableError(msg, details={"site_code": config.site_code})
        text, composite = mode.handle.document, mode.handle.ci_unique_id
    elif isinstance(mode, TransformMode):
        text, composite = mode.document, mode.source_identity
    else:
        msg = f"Unknown execution mode {type(mode).__name__}"
        raise InputValidationError(msg)

    source = SourceArtifactIdentity.parse(composite)
    root = parse_document(text)
    return _Workspace(
        root=root,
        merger=ArtifactMerger(root),
        rules=RuleBuilder(source),
        config=config,
    )


def _finish(workspace: _Workspace, mode: ExecutionMode) -> CompositionResult:
    document = serialize_document(workspace.root)
    if isinstance(mode, DirectMode):
        mode.store.commit(mode.handle, document, workspace.config.site_code)
        return workspace.result
    return workspace.result.model_copy(update={"document": document})


def _add_setting_with_rule(workspace: _Workspace, setting: Setting, spec: RuleSpec) -> None:
    workspace.merger.add_setting(workspace.settings.build(setting))
    rule = workspace.rules.build(
        SettingReference.for_setting(setting),
        spec,
        merger=workspace.merger,
        verify_setting=workspace.config.verify_setting_references,
    )
    workspace.merger.add_rule(rule)
    workspace.result.logical_names.append(setting.logical_name)
    workspace.result.rule_ids.append(rule.get("id"))


def _add_script(workspace: _Workspace, request: ScriptRequest) -> None:
    setting = script_setting_from_request(request, workspace.config)
    spec = RuleSpec(
        name=request.name,
        description=request.description,
        compliant_value=request.compliant_value,
        severity=request.severity or workspace.config.default_severity,
        remediate=request.remediate,
        noncompliant_when_not_found=request.noncompliant_when_not_found,
    )
    _add_setting_with_rule(workspace, setting, spec)


def _add_registry(workspace: _Workspace, value: RegistryValue) -> None:
    data_type = native_data_type(value.value_kind, value.convert_dword_to_qword)
    if data_type is None:
        scripts = workspace.synthesizer.synthesize(value)
        request = ScriptRequest(
            name=value.display_name,
            detection_script=scripts.detection,
            remediation_script=scripts.remediation,
            compliant_value=scripts.compliant_value,
            language=scripts.language,
            run_as_user=value.per_user,
            is_64bit=value.is_64bit,
            description=value.description,
            severity=value.severity,
            remediate=value.remediate,
            noncompliant_when_not_found=value.noncompliant_when_not_found,
        )
        _add_script(workspace, request)
        return

    setting = registry_setting_from_value(value, data_type, workspace.config)
    spec = RuleSpec(
        name=value.display_name,
        description=value.description,
        compliant_value=value.value_data,
        severity=value.severity or workspace.config.default_severity,
        remediate=value.remediate,
        noncompliant_when_not_found=value.noncompliant_when_not_found,
    )
    _add_setting_with_rule(workspace, setting, spec)


def _validated(model: type[ModelT], data: ModelT | Mapping[str, Any]) -> ModelT:
    """Accept a model instance or build one from a raw mapping."""
    if isinstance(data, model):
        return data
    if not isinstance(data, Mapping):
        msg = f"Expected {model.__name__} or a mapping, got {type(data).__name__}"
        raise InputValidationError(msg)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise _input_error(e) from e


def _input_error(error: ValidationError) -> InputValidationError:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in item['loc']) or error.title}: {item['msg']}"
        for item in error.errors()
    )
    msg = f"Invalid {error.title}: {problems}"
    return InputValidationError(msg, details={"errors": error.errors(include_url=False)})


def compose_script_setting(
    request: ScriptRequest | Mapping[str, Any],
    mode: ExecutionMode,
    config: ComposerConfig | None = None,
) -> CompositionResult:
    """Add a script setting and a rule on its output to a document.

    Args:
        request: Scripts, compliant return value and rule options, as a
            model or a mapping of its fields
        mode: Direct or transform execution
        config: Site code and defaults; an empty configuration if omitted

    Returns:
        Generated logical name and rule id; the updated document in
        transform mode

    Raises:
        StoreUnavailableError: Direct mode without a usable store
        ArtifactStructureError: If the document flavor is not recognized
        InputValidationError: If the request or the source identity is
            malformed
    """
    request = _validated(ScriptRequest, request)
    config = config or ComposerConfig()
    workspace = _open(mode, config)
    try:
        _add_script(workspace, request)
    except ValidationError as e:
        raise _input_error(e) from e
    return _finish(workspace, mode)


def compose_registry_setting(
    values: RegistryValue | Mapping[str, Any] | Iterable[RegistryValue | Mapping[str, Any]],
    mode: ExecutionMode,
    config: ComposerConfig | None = None,
) -> CompositionResult:
    """Add settings and rules enforcing one or more registry values.

    ``REG_SZ`` and ``REG_QWORD`` values (and ``REG_DWORD`` values converted
    to QWORD) become registry settings; other kinds are enforced by
    synthesized VBScript. A batch is folded into one in-memory document and
    committed once in direct mode, so a failing value commits nothing.

    Args:
        values: A single value or a sequence of values, each a model or a
            mapping of its fields
        mode: Direct or transform execution
        config: Site code and defaults; an empty configuration if omitted

    Returns:
        Generated logical names and rule ids in input order; the updated
        document in transform mode

    Raises:
        StoreUnavailableError: Direct mode without a usable store
        ArtifactStructureError: If the document flavor is not recognized
        InputValidationError: If the batch is empty or a value is malformed
    """
    if isinstance(values, (RegistryValue, Mapping)):
        values = [values]
    batch = [_validated(RegistryValue, value) for value in values]
    if not batch:
        msg = "At least one registry value is required"
        raise InputValidationError(msg)

    config = config or ComposerConfig()
    workspace = _open(mode, config)
    try:
        for value in batch:
            _add_registry(workspace, value)
    except ValidationError as e:
        raise _input_error(e) from e
    logger.debug("Composed %d registry value(s)", len(batch))
    return _finish(workspace, mode)
