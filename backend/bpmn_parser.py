"""
BPMN 2.0 reader
Turns a BPMN XML document into typed flow-element records for the CACAO converter
"""

import logging
from typing import List, Optional

from lxml import etree
from pydantic import BaseModel, Field

from conversion_errors import BpmnParseError

logger = logging.getLogger(__name__)


class BpmnStartEvent(BaseModel):
    id: str
    name: str = ''
    outgoing: List[str] = Field(default_factory=list)


class BpmnTask(BaseModel):
    """Any task-like node: every task kind plus intermediate events"""
    id: str
    name: str = ''
    documentation: str = ''
    incoming: List[str] = Field(default_factory=list)
    outgoing: List[str] = Field(default_factory=list)


class BpmnGateway(BaseModel):
    id: str
    name: str = ''
    incoming: List[str] = Field(default_factory=list)
    outgoing: List[str] = Field(default_factory=list)


class BpmnEndEvent(BaseModel):
    id: str
    name: str = ''
    incoming: List[str] = Field(default_factory=list)
    signal_event_definition: Optional[str] = None


class BpmnSequenceFlow(BaseModel):
    id: str
    source_ref: str
    target_ref: str
    name: str = ''


class BpmnProcess(BaseModel):
    id: str
    name: str = ''
    is_executable: bool = False
    camunda_version_tag: str = ''
    start_event: Optional[BpmnStartEvent] = None
    service_tasks: List[BpmnTask] = Field(default_factory=list)
    user_tasks: List[BpmnTask] = Field(default_factory=list)
    manual_tasks: List[BpmnTask] = Field(default_factory=list)
    script_tasks: List[BpmnTask] = Field(default_factory=list)
    send_tasks: List[BpmnTask] = Field(default_factory=list)
    tasks: List[BpmnTask] = Field(default_factory=list)
    intermediate_throw_events: List[BpmnTask] = Field(default_factory=list)
    intermediate_catch_events: List[BpmnTask] = Field(default_factory=list)
    exclusive_gateways: List[BpmnGateway] = Field(default_factory=list)
    inclusive_gateways: List[BpmnGateway] = Field(default_factory=list)
    parallel_gateways: List[BpmnGateway] = Field(default_factory=list)
    end_events: List[BpmnEndEvent] = Field(default_factory=list)
    sequence_flows: List[BpmnSequenceFlow] = Field(default_factory=list)


class BpmnDefinitions(BaseModel):
    """Root element of a BPMN 2.0 document, see http://www.omg.org/spec/BPMN/2.0/"""
    id: str = ''
    target_namespace: str = ''
    exporter: str = ''
    exporter_version: str = ''
    processes: List[BpmnProcess] = Field(default_factory=list)


class BPMNParser:
    """
    Reads the flow elements the converter understands:
    - start, end and intermediate events
    - service, user, manual, script, send and plain tasks
    - exclusive, inclusive and parallel gateways
    - sequence flows (with their optional labels)
    Everything else (lanes, sub-processes, boundary events, diagram shapes) is ignored.
    """

    BPMN_MODEL = 'http://www.omg.org/spec/BPMN/20100524/MODEL'
    CAMUNDA = 'http://camunda.org/schema/1.0/bpmn'
    BPMN_NS = {'bpmn': BPMN_MODEL}

    TASK_TAGS = {
        'service_tasks': 'serviceTask',
        'user_tasks': 'userTask',
        'manual_tasks': 'manualTask',
        'script_tasks': 'scriptTask',
        'send_tasks': 'sendTask',
        'tasks': 'task',
        'intermediate_throw_events': 'intermediateThrowEvent',
        'intermediate_catch_events': 'intermediateCatchEvent',
    }
    GATEWAY_TAGS = {
        'exclusive_gateways': 'exclusiveGateway',
        'inclusive_gateways': 'inclusiveGateway',
        'parallel_gateways': 'parallelGateway',
    }

    def __init__(self, xml_content: bytes):
        self.xml_content = xml_content
        # No entity expansion or network access for uploaded documents
        xml_parser = etree.XMLParser(resolve_entities=False, no_network=True)
        try:
            self.root = etree.fromstring(xml_content, parser=xml_parser)
        except etree.XMLSyntaxError as e:
            raise BpmnParseError(f"invalid XML: {e}") from e

        if self.root.tag != f'{{{self.BPMN_MODEL}}}definitions':
            raise BpmnParseError(f"expected a BPMN definitions element, found {self.root.tag}")

    def _children(self, element, tag: str) -> list:
        return element.xpath(f'./bpmn:{tag}', namespaces=self.BPMN_NS)

    def _refs(self, element, tag: str) -> List[str]:
        """Text of every <incoming>/<outgoing> child, in document order"""
        return [ref.text.strip() for ref in self._children(element, tag) if ref.text and ref.text.strip()]

    def _documentation(self, element) -> str:
        doc_elements = self._children(element, 'documentation')
        if doc_elements and doc_elements[0].text:
            return doc_elements[0].text.strip()
        return ''

    def _parse_task(self, element) -> BpmnTask:
        return BpmnTask(
            id=element.get('id', ''),
            name=element.get('name', ''),
            documentation=self._documentation(element),
            incoming=self._refs(element, 'incoming'),
            outgoing=self._refs(element, 'outgoing'),
        )

    def _parse_gateway(self, element) -> BpmnGateway:
        return BpmnGateway(
            id=element.get('id', ''),
            name=element.get('name', ''),
            incoming=self._refs(element, 'incoming'),
            outgoing=self._refs(element, 'outgoing'),
        )

    def _parse_end_event(self, element) -> BpmnEndEvent:
        signal = self._children(element, 'signalEventDefinition')
        return BpmnEndEvent(
            id=element.get('id', ''),
            name=element.get('name', ''),
            incoming=self._refs(element, 'incoming'),
            signal_event_definition=signal[0].get('id') if signal else None,
        )

    def _parse_process(self, process) -> BpmnProcess:
        process_id = process.get('id', '')
        fields = {
            'id': process_id,
            'name': process.get('name', ''),
            'is_executable': process.get('isExecutable', 'false').lower() == 'true',
            'camunda_version_tag': process.get(f'{{{self.CAMUNDA}}}versionTag', ''),
        }

        # A process has at most one start event the converter can use
        start_events = self._children(process, 'startEvent')
        if start_events:
            if len(start_events) > 1:
                logger.warning("process %s has %d start events, using %s",
                               process_id, len(start_events), start_events[0].get('id'))
            fields['start_event'] = BpmnStartEvent(
                id=start_events[0].get('id', ''),
                name=start_events[0].get('name', ''),
                outgoing=self._refs(start_events[0], 'outgoing'),
            )

        for field_name, tag in self.TASK_TAGS.items():
            fields[field_name] = [self._parse_task(el) for el in self._children(process, tag)]

        for field_name, tag in self.GATEWAY_TAGS.items():
            fields[field_name] = [self._parse_gateway(el) for el in self._children(process, tag)]

        fields['end_events'] = [self._parse_end_event(el) for el in self._children(process, 'endEvent')]

        fields['sequence_flows'] = [
            BpmnSequenceFlow(
                id=flow.get('id', ''),
                source_ref=flow.get('sourceRef', ''),
                target_ref=flow.get('targetRef', ''),
                name=flow.get('name', ''),
            )
            for flow in self._children(process, 'sequenceFlow')
        ]

        return BpmnProcess(**fields)

    def parse(self) -> BpmnDefinitions:
        """Parse every <process> directly under <definitions>"""
        processes = [self._parse_process(p) for p in self._children(self.root, 'process')]
        return BpmnDefinitions(
            id=self.root.get('id', ''),
            target_namespace=self.root.get('targetNamespace', ''),
            exporter=self.root.get('exporter', ''),
            exporter_version=self.root.get('exporterVersion', ''),
            processes=processes,
        )


def read_bpmn(xml_content: bytes) -> BpmnDefinitions:
    """
    Read a BPMN 2.0 XML document.
    Raises BpmnParseError for malformed XML or a non-BPMN root element.
    """
    if isinstance(xml_content, str):
        xml_content = xml_content.encode('utf-8')
    return BPMNParser(xml_content).parse()
