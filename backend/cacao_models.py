"""
CACAO playbook object model and JSON rendering.
Field names follow the CACAO 1.1 / 2.0 JSON schemas.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

CACAO_NAMESPACE_UUID_STRING = 'aa7caf3a-d55a-4e9a-b34e-056215fba56a'
CACAO_SPEC_VERSION_11 = '1.1'
CACAO_SPEC_VERSION_20 = '2.0'
SUPPORTED_SPEC_VERSIONS = (CACAO_SPEC_VERSION_11, CACAO_SPEC_VERSION_20)

# Step types
CACAO_STEP_TYPE_START = 'start'
CACAO_STEP_TYPE_END = 'end'
CACAO_STEP_TYPE_11_STEP = 'step'
CACAO_STEP_TYPE_ACTION = 'action'
CACAO_STEP_TYPE_11_SINGLE = 'single'
CACAO_STEP_TYPE_PLAYBOOK_ACTION = 'playbook-action'
CACAO_STEP_TYPE_PARALLEL = 'parallel'
CACAO_STEP_TYPE_IF_COND = 'if-condition'
CACAO_STEP_TYPE_SWITCH_COND = 'switch-condition'
CACAO_STEP_TYPE_WHILE_COND = 'while-condition'

# Command types
CACAO_COMMAND_TYPE_MANUAL = 'manual'
CACAO_COMMAND_TYPE_BASH = 'bash'
CACAO_COMMAND_TYPE_HTTP = 'http-api'
CACAO_COMMAND_TYPE_SSH = 'ssh'
CACAO_COMMAND_TYPE_CALDERA = 'caldera-cmd'
CACAO_COMMAND_TYPE_ELASTIC = 'elastic'
CACAO_COMMAND_TYPE_JUPYTER = 'jupyter'
CACAO_COMMAND_TYPE_KESTREL = 'kestrel'
CACAO_COMMAND_TYPE_OPENC2 = 'openc2-json'
CACAO_COMMAND_TYPE_SIGMA = 'sigma'
CACAO_COMMAND_TYPE_YARA = 'yara'


class CacaoModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)


class Command(CacaoModel):
    type: str
    command: str
    description: str = ''


class Step(CacaoModel):
    type: str
    name: Optional[str] = None
    on_completion: Optional[str] = None
    condition: Optional[str] = None
    on_true: Optional[str] = None
    on_false: Optional[str] = None
    switch: Optional[str] = None
    cases: Optional[Dict[str, List[str]]] = None
    next_steps: Optional[List[str]] = None
    commands: Optional[List[Command]] = None
    in_args: Optional[List[str]] = None

    def successors(self) -> List[str]:
        """Every step id this step can hand control to"""
        targets = [self.on_completion, self.on_true, self.on_false]
        targets.extend(self.next_steps or [])
        for case_targets in (self.cases or {}).values():
            targets.extend(case_targets)
        return [t for t in targets if t]


class PlaybookVariable(CacaoModel):
    type: str
    description: str = ''
    value: str = ''
    constant: bool = False


class ExternalReference(CacaoModel):
    name: str
    description: str = ''
    source: str = ''
    url: str = ''
    hash: str = ''
    external_id: str = ''


class CacaoPlaybook(CacaoModel):
    type: str = 'playbook'
    spec_version: str
    id: str
    name: str = ''
    description: Optional[str] = None
    playbook_types: Optional[List[str]] = None
    created_by: Optional[str] = None
    created: datetime
    modified: datetime
    revoked: bool = False
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    derived_from: Optional[str] = Field(default=None, alias='derived-from')
    priority: int = 0
    severity: int = 0
    impact: int = 0
    labels: Optional[List[str]] = None
    external_references: Optional[List[ExternalReference]] = None
    markings: Optional[List[str]] = None
    playbook_variables: Optional[Dict[str, PlaybookVariable]] = None
    workflow_start: str = ''
    workflow_exception: Optional[str] = None
    workflow: Dict[str, Step] = Field(default_factory=dict)


def _sorted_dict(value: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value[key] for key in sorted(value)}


def playbook_to_dict(playbook: CacaoPlaybook) -> Dict[str, Any]:
    """
    JSON-ready dict of a playbook.
    Unset optional fields are dropped; workflow, variable and case keys are sorted
    so identical playbooks always render identically.
    """
    data = playbook.model_dump(mode='json', by_alias=True, exclude_none=True)
    workflow = {}
    for step_id, step in _sorted_dict(data['workflow']).items():
        if 'cases' in step:
            step['cases'] = _sorted_dict(step['cases'])
        workflow[step_id] = step
    data['workflow'] = workflow
    if 'playbook_variables' in data:
        data['playbook_variables'] = _sorted_dict(data['playbook_variables'])
    return data


def playbook_to_json(playbook: CacaoPlaybook, indent: int = 4) -> str:
    return json.dumps(playbook_to_dict(playbook), indent=indent, ensure_ascii=False)
