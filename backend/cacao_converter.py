"""
BPMN to CACAO conversion
Lowers a parsed BPMN process graph into a CACAO playbook step graph:
- events and tasks become start / end / action steps
- exclusive gateways become if-condition (2 branches) or switch-condition (3+ branches) steps
- parallel and inclusive gateways become parallel steps
- missing successors are replaced by generated End steps
"""

import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union

from bpmn_parser import BpmnDefinitions, BpmnGateway, BpmnProcess, BpmnSequenceFlow, BpmnTask
from cacao_models import (
    CACAO_COMMAND_TYPE_BASH,
    CACAO_COMMAND_TYPE_HTTP,
    CACAO_COMMAND_TYPE_MANUAL,
    CACAO_NAMESPACE_UUID_STRING,
    CACAO_SPEC_VERSION_11,
    CACAO_SPEC_VERSION_20,
    CACAO_STEP_TYPE_11_SINGLE,
    CACAO_STEP_TYPE_11_STEP,
    CACAO_STEP_TYPE_ACTION,
    CACAO_STEP_TYPE_END,
    CACAO_STEP_TYPE_IF_COND,
    CACAO_STEP_TYPE_PARALLEL,
    CACAO_STEP_TYPE_START,
    CACAO_STEP_TYPE_SWITCH_COND,
    CacaoPlaybook,
    Command,
    PlaybookVariable,
    Step,
)
from conversion_errors import ProcessCountError, UnsupportedSpecVersionError

logger = logging.getLogger(__name__)

CACAO_NAMESPACE_UUID = uuid.UUID(CACAO_NAMESPACE_UUID_STRING)

Discriminator = Union[str, int]
TransitionKey = Tuple[str, Discriminator]

# Id prefix for each semantic step kind. CACAO 1.1 prefixes every step with "step".
STEP_ID_PREFIXES = {
    CACAO_SPEC_VERSION_20: {
        CACAO_STEP_TYPE_START: CACAO_STEP_TYPE_START,
        CACAO_STEP_TYPE_END: CACAO_STEP_TYPE_END,
        CACAO_STEP_TYPE_ACTION: CACAO_STEP_TYPE_ACTION,
        CACAO_STEP_TYPE_IF_COND: CACAO_STEP_TYPE_IF_COND,
        CACAO_STEP_TYPE_SWITCH_COND: CACAO_STEP_TYPE_SWITCH_COND,
        CACAO_STEP_TYPE_PARALLEL: CACAO_STEP_TYPE_PARALLEL,
    },
    CACAO_SPEC_VERSION_11: {
        CACAO_STEP_TYPE_START: CACAO_STEP_TYPE_11_STEP,
        CACAO_STEP_TYPE_END: CACAO_STEP_TYPE_11_STEP,
        CACAO_STEP_TYPE_ACTION: CACAO_STEP_TYPE_11_STEP,
        CACAO_STEP_TYPE_IF_COND: CACAO_STEP_TYPE_11_STEP,
        CACAO_STEP_TYPE_SWITCH_COND: CACAO_STEP_TYPE_11_STEP,
        CACAO_STEP_TYPE_PARALLEL: CACAO_STEP_TYPE_11_STEP,
    },
}

# "type" of a plain action step in each version
ACTION_STEP_TYPES = {
    CACAO_SPEC_VERSION_20: CACAO_STEP_TYPE_ACTION,
    CACAO_SPEC_VERSION_11: CACAO_STEP_TYPE_11_SINGLE,
}

# Command type per task category, in lowering order
TASK_COMMAND_TYPES = (
    ('service_tasks', CACAO_COMMAND_TYPE_HTTP),
    ('user_tasks', CACAO_COMMAND_TYPE_MANUAL),
    ('manual_tasks', CACAO_COMMAND_TYPE_MANUAL),
    ('script_tasks', CACAO_COMMAND_TYPE_BASH),
    ('send_tasks', CACAO_COMMAND_TYPE_BASH),
    ('tasks', CACAO_COMMAND_TYPE_MANUAL),
    ('intermediate_throw_events', CACAO_COMMAND_TYPE_MANUAL),
)
CATCH_EVENT_COMMAND_TYPE = CACAO_COMMAND_TYPE_MANUAL

CONDITION_TRUE_DISCRIMINATOR = 'YES'
CONDITION_FALSE_DISCRIMINATOR = 'NO'
CONDITION_VARIABLE_TYPE = 'integer'
CONDITION_VARIABLE_DEFAULT = '0'
CONDITION_TRUE_VALUE = '1'


def name_based_uuid(name: str) -> uuid.UUID:
    """
    Version 5 style UUID built with SHA-256 instead of SHA-1:
    first 16 bytes of sha256(namespace + name) with the RFC 4122 variant and version bits set.
    The same name always gives the same UUID.
    """
    digest = hashlib.sha256(CACAO_NAMESPACE_UUID.bytes + name.encode('utf-8')).digest()
    return uuid.UUID(bytes=digest[:16], version=5)


def condition_variable_name(label: str, fallback: str) -> str:
    """Turn a gateway label into a variable name: 'Approved?' -> 'approved'"""
    name = label.replace(' ', '_').lower()
    name = ''.join(c for c in name if c.isalnum() or c == '_')
    return name or fallback


class ConversionContext:
    """
    Per-document conversion state shared by the lowering functions.

    step_ids:    BPMN element id -> CACAO step id
    transitions: (BPMN source id, discriminator) -> BPMN target id
    playbook:    the playbook being built
    """

    def __init__(self, spec_version: str):
        if spec_version not in STEP_ID_PREFIXES:
            raise UnsupportedSpecVersionError(spec_version)
        self.spec_version = spec_version
        self.step_ids: Dict[str, str] = {}
        self.transitions: Dict[TransitionKey, str] = {}
        self.playbook: Optional[CacaoPlaybook] = None
        self.synthesized_end_steps = 0

    @property
    def action_step_type(self) -> str:
        return ACTION_STEP_TYPES[self.spec_version]

    def derive_step_id(self, source_id: str, kind: str) -> str:
        return f"{STEP_ID_PREFIXES[self.spec_version][kind]}--{name_based_uuid(source_id)}"

    def new_step_id(self, kind: str) -> str:
        """Random id for a step with no BPMN counterpart"""
        return f"{STEP_ID_PREFIXES[self.spec_version][kind]}--{uuid.uuid4()}"

    def resolve(self, source_id: str, discriminator: Discriminator) -> Optional[str]:
        """Step id reached from source_id through the flow keyed by discriminator"""
        target = self.transitions.get((source_id, discriminator))
        if target is None:
            return None
        return self.step_ids.get(target)

    def synthesize_end_step(self) -> str:
        """Add a generated End step to the playbook and return its id"""
        step_id = self.new_step_id(CACAO_STEP_TYPE_END)
        self.playbook.workflow[step_id] = Step(type=CACAO_STEP_TYPE_END, name='End')
        self.synthesized_end_steps += 1
        return step_id


def classify_nodes(process: BpmnProcess, context: ConversionContext) -> str:
    """
    Fill context.step_ids for every element that can be a flow target.
    Returns the id of the step the playbook starts at ('' when there is none).
    """
    step_ids = context.step_ids
    start_step_id = ''

    if process.start_event is not None:
        start_step_id = context.derive_step_id(process.start_event.id, CACAO_STEP_TYPE_START)
        step_ids[process.start_event.id] = start_step_id

    # Without a start event the first catch event starts the playbook
    for event in process.intermediate_catch_events:
        if start_step_id:
            step_ids[event.id] = context.derive_step_id(event.id, CACAO_STEP_TYPE_ACTION)
        else:
            start_step_id = context.derive_step_id(event.id, CACAO_STEP_TYPE_START)
            step_ids[event.id] = start_step_id
            logger.info("process %s has no start event, starting at catch event %s", process.id, event.id)

    for end_event in process.end_events:
        step_ids[end_event.id] = context.derive_step_id(end_event.id, CACAO_STEP_TYPE_END)

    for category, _ in TASK_COMMAND_TYPES:
        for task in getattr(process, category):
            step_ids[task.id] = context.derive_step_id(task.id, CACAO_STEP_TYPE_ACTION)

    for gateway in process.exclusive_gateways:
        if len(gateway.outgoing) == 2:
            step_ids[gateway.id] = context.derive_step_id(gateway.id, CACAO_STEP_TYPE_IF_COND)
        elif len(gateway.outgoing) > 2:
            step_ids[gateway.id] = context.derive_step_id(gateway.id, CACAO_STEP_TYPE_SWITCH_COND)
        else:
            logger.error("exclusive gateway %s has unexpected number of outgoing flows: %d",
                         gateway.id, len(gateway.outgoing))

    # TODO: inclusive gateways should get one if-condition step per outgoing flow
    for gateway in process.parallel_gateways + process.inclusive_gateways:
        step_ids[gateway.id] = context.derive_step_id(gateway.id, CACAO_STEP_TYPE_PARALLEL)

    return start_step_id


def index_transitions(sequence_flows: List[BpmnSequenceFlow]) -> Dict[TransitionKey, str]:
    """
    Map each sequence flow to its target, keyed by source id and label, e.g.
        ('Activity_1g87yhd', 0)     -> 'Activity_0wagh2h'
        ('Gateway_1hblfsj', 'YES')  -> 'Activity_0vuc752'
    Unlabeled flows get the lowest position number still free for their source.
    """
    transitions: Dict[TransitionKey, str] = {}
    for flow in sequence_flows:
        if flow.name:
            key = (flow.source_ref, flow.name.upper())
        else:
            position = 0
            while (flow.source_ref, position) in transitions:
                position += 1
            key = (flow.source_ref, position)
        transitions[key] = flow.target_ref
    return transitions


def lower_task(task: BpmnTask, command_type: str, context: ConversionContext) -> str:
    """Create the action (or start) step for a task-like element and return its id"""
    playbook = context.playbook
    step_id = context.step_ids.get(task.id) or context.derive_step_id(task.id, CACAO_STEP_TYPE_ACTION)

    on_completion = context.resolve(task.id, 0)
    if on_completion is None:
        on_completion = context.synthesize_end_step()
        logger.debug("%s has no resolvable successor, linked to generated end step %s", task.id, on_completion)

    step_type = context.action_step_type
    if step_id == playbook.workflow_start:
        step_type = CACAO_STEP_TYPE_START

    playbook.workflow[step_id] = Step(
        type=step_type,
        name=task.name or None,
        on_completion=on_completion,
        commands=[
            Command(type=command_type, command=task.name, description=task.documentation),
        ],
    )
    return step_id


def _lower_parallel_gateway(gateway: BpmnGateway, context: ConversionContext) -> str:
    step_id = context.step_ids.get(gateway.id) or context.derive_step_id(gateway.id, CACAO_STEP_TYPE_PARALLEL)
    next_steps = []
    for position in range(len(gateway.outgoing)):
        target = context.resolve(gateway.id, position)
        if target is None:
            logger.warning("gateway %s: outgoing flow %d has no resolvable target, leaving it out",
                           gateway.id, position)
            continue
        next_steps.append(target)

    context.playbook.workflow[step_id] = Step(
        type=CACAO_STEP_TYPE_PARALLEL,
        name=gateway.name or None,
        next_steps=next_steps or None,
    )
    return step_id


def _case_name(discriminator: Discriminator, labels) -> str:
    """Switch case name; an unlabeled flow whose number is also a label gets a '#' prefix"""
    if isinstance(discriminator, str):
        return discriminator
    case_name = str(discriminator)
    while case_name in labels:
        case_name = f"#{case_name}"
    return case_name


def lower_gateway(gateway: BpmnGateway, context: ConversionContext, parallel: bool = False) -> Optional[str]:
    """
    Create the step for a gateway and return its id.
    Returns None when a conditional gateway has fewer than two outgoing flows;
    such a gateway cannot be expressed as a CACAO condition and is left out.
    """
    if parallel:
        return _lower_parallel_gateway(gateway, context)

    outgoing_count = len(gateway.outgoing)
    if outgoing_count < 2:
        logger.warning("skipping gateway %s: %d outgoing flows cannot form a condition", gateway.id, outgoing_count)
        return None

    playbook = context.playbook
    condition = condition_variable_name(gateway.name, gateway.id)
    gateway_name = gateway.name or gateway.id
    if playbook.playbook_variables is None:
        playbook.playbook_variables = {}
    playbook.playbook_variables[condition] = PlaybookVariable(
        type=CONDITION_VARIABLE_TYPE,
        description=gateway_name,
        value=CONDITION_VARIABLE_DEFAULT,
        constant=False,
    )

    if outgoing_count == 2:
        step_id = context.step_ids.get(gateway.id) or context.derive_step_id(gateway.id, CACAO_STEP_TYPE_IF_COND)
        on_true = context.resolve(gateway.id, CONDITION_TRUE_DISCRIMINATOR)
        if on_true is None:
            on_true = context.synthesize_end_step()
            logger.debug("gateway %s has no 'Yes' branch, linked to generated end step %s", gateway.id, on_true)
        on_false = context.resolve(gateway.id, CONDITION_FALSE_DISCRIMINATOR)
        if on_false is None:
            on_false = context.synthesize_end_step()
            logger.debug("gateway %s has no 'No' branch, linked to generated end step %s", gateway.id, on_false)
        playbook.workflow[step_id] = Step(
            type=CACAO_STEP_TYPE_IF_COND,
            name=gateway_name,
            condition=f"{condition} == {CONDITION_TRUE_VALUE}",
            in_args=[condition],
            on_true=on_true,
            on_false=on_false,
        )
        return step_id

    step_id = context.step_ids.get(gateway.id) or context.derive_step_id(gateway.id, CACAO_STEP_TYPE_SWITCH_COND)
    branches = [(discriminator, target) for (source_id, discriminator), target in context.transitions.items()
                if source_id == gateway.id]
    labels = {discriminator for discriminator, _ in branches if isinstance(discriminator, str)}
    cases = {}
    for discriminator, target in branches:
        case_name = _case_name(discriminator, labels)
        if case_name != str(discriminator):
            logger.warning("gateway %s: unlabeled flow %s clashes with a label, named case %s",
                           gateway.id, discriminator, case_name)
        target_step_id = context.step_ids.get(target)
        if target_step_id is None:
            logger.warning("gateway %s: case %s leads to unknown element %s", gateway.id, case_name, target)
            cases[case_name] = []
        else:
            cases[case_name] = [target_step_id]

    playbook.workflow[step_id] = Step(
        type=CACAO_STEP_TYPE_SWITCH_COND,
        name=gateway_name,
        switch=condition,
        in_args=[condition],
        cases=cases,
    )
    return step_id


def convert_to_cacao(bpmn_definitions: BpmnDefinitions,
                     spec_version: str = CACAO_SPEC_VERSION_11,
                     now: Optional[datetime] = None) -> CacaoPlaybook:
    """
    Convert a BPMN definition to a CACAO playbook.

    The definition must hold exactly one process (ProcessCountError otherwise).
    `now` sets the created/modified timestamps; it defaults to the current UTC time.
    """
    context = ConversionContext(spec_version)
    if len(bpmn_definitions.processes) != 1:
        raise ProcessCountError(len(bpmn_definitions.processes))
    process = bpmn_definitions.processes[0]

    # Every step id must be known before any successor is resolved
    start_step_id = classify_nodes(process, context)
    context.transitions = index_transitions(process.sequence_flows)
    if not start_step_id:
        logger.warning("process %s has neither a start event nor a catch event to start from", process.id)

    if now is None:
        now = datetime.now(timezone.utc)
    playbook = CacaoPlaybook(
        spec_version=spec_version,
        id=f"playbook--{name_based_uuid(process.id)}",
        name=process.name,
        created=now,
        modified=now,
        workflow_start=start_step_id,
    )
    context.playbook = playbook

    if process.start_event is not None:
        start_event = process.start_event
        playbook.workflow[start_step_id] = Step(
            type=CACAO_STEP_TYPE_START,
            name=start_event.name or None,
            on_completion=context.resolve(start_event.id, 0),
        )

    for event in process.intermediate_catch_events:
        lower_task(event, CATCH_EVENT_COMMAND_TYPE, context)

    for end_event in process.end_events:
        playbook.workflow[context.step_ids[end_event.id]] = Step(
            type=CACAO_STEP_TYPE_END,
            name=end_event.name or 'End',
        )

    for category, command_type in TASK_COMMAND_TYPES:
        for task in getattr(process, category):
            lower_task(task, command_type, context)

    for gateway in process.exclusive_gateways:
        lower_gateway(gateway, context, parallel=False)
    for gateway in process.parallel_gateways:
        lower_gateway(gateway, context, parallel=True)
    # Inclusive gateways fan out like parallel ones; their conditions are not carried over
    for gateway in process.inclusive_gateways:
        lower_gateway(gateway, context, parallel=True)

    if context.synthesized_end_steps:
        logger.info("process %s: generated %d end steps for unresolved successors",
                    process.id, context.synthesized_end_steps)
    return playbook
