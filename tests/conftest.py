"""Shared fixtures for the BPMN to CACAO tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable

import pytest

# app.py writes its debug log on import; keep it out of the user's home directory
os.environ.setdefault("BPMN_TO_CACAO_DATA_DIR", tempfile.mkdtemp(prefix="bpmn_to_cacao_"))

from bpmn_parser import (  # noqa: E402
    BpmnDefinitions,
    BpmnEndEvent,
    BpmnGateway,
    BpmnProcess,
    BpmnSequenceFlow,
    BpmnStartEvent,
    BpmnTask,
)

AV_EDR_ALERT_BPMN = """<?xml version="1.0" encoding="UTF-8"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" xmlns:bpmndi="http://www.omg.org/spec/BPMN/20100524/DI" xmlns:dc="http://www.omg.org/spec/DD/20100524/DC" xmlns:di="http://www.omg.org/spec/DD/20100524/DI" xmlns:bioc="http://bpmn.io/schema/bpmn/biocolor/1.0" xmlns:camunda="http://camunda.org/schema/1.0/bpmn" id="Definitions_0xcsshl" targetNamespace="http://bpmn.io/schema/bpmn" exporter="Camunda Modeler" exporterVersion="3.7.2">
  <bpmn:process id="ProcessAV-EDRAlert" name="Process AV-EDR Alert" isExecutable="true" camunda:versionTag="Shareable_Workflow">
    <bpmn:startEvent id="StartEvent_1" name="Endpoint / AV Alerts on System">
      <bpmn:outgoing>Flow_1bgfopa</bpmn:outgoing>
    </bpmn:startEvent>
    <bpmn:serviceTask id="Activity_18ru9dm" name="SOAR Processes AV/EDR Alert">
      <bpmn:incoming>Flow_1bgfopa</bpmn:incoming>
      <bpmn:outgoing>Flow_017q5eb</bpmn:outgoing>
    </bpmn:serviceTask>
    <bpmn:exclusiveGateway id="Gateway_1hblfsj" name="Does alert meet policy threshold for COA review?">
      <bpmn:incoming>Flow_017q5eb</bpmn:incoming>
      <bpmn:outgoing>Flow_1jkwvw5</bpmn:outgoing>
      <bpmn:outgoing>Flow_1g10y9a</bpmn:outgoing>
    </bpmn:exclusiveGateway>
    <bpmn:endEvent id="Event_1ttzlep" name="Identify Systems and IOCs">
      <bpmn:incoming>Flow_1f96l27</bpmn:incoming>
      <bpmn:incoming>Flow_006qjb3</bpmn:incoming>
      <bpmn:signalEventDefinition id="SignalEventDefinition_1f935tp" />
    </bpmn:endEvent>
    <bpmn:exclusiveGateway id="Gateway_147ah6j" name="Does alert meet threshold for more data collection?">
      <bpmn:incoming>Flow_1g10y9a</bpmn:incoming>
      <bpmn:outgoing>Flow_031zd3o</bpmn:outgoing>
      <bpmn:outgoing>Flow_0w9k4zf</bpmn:outgoing>
    </bpmn:exclusiveGateway>
    <bpmn:serviceTask id="Activity_1g87yhd" name="SOAR Collects Internal Data on System">
      <bpmn:incoming>Flow_031zd3o</bpmn:incoming>
      <bpmn:outgoing>Flow_110b3rh</bpmn:outgoing>
    </bpmn:serviceTask>
    <bpmn:endEvent id="Event_18clgak" name="End">
      <bpmn:incoming>Flow_0w9k4zf</bpmn:incoming>
    </bpmn:endEvent>
    <bpmn:sequenceFlow id="Flow_017q5eb" sourceRef="Activity_18ru9dm" targetRef="Gateway_1hblfsj" />
    <bpmn:sequenceFlow id="Flow_1jkwvw5" name="Yes" sourceRef="Gateway_1hblfsj" targetRef="Activity_0vuc752" />
    <bpmn:sequenceFlow id="Flow_1g10y9a" name="No" sourceRef="Gateway_1hblfsj" targetRef="Gateway_147ah6j" />
    <bpmn:sequenceFlow id="Flow_031zd3o" name="Yes" sourceRef="Gateway_147ah6j" targetRef="Activity_1g87yhd" />
    <bpmn:sequenceFlow id="Flow_0w9k4zf" name="No" sourceRef="Gateway_147ah6j" targetRef="Event_18clgak" />
    <bpmn:sequenceFlow id="Flow_1bgfopa" sourceRef="StartEvent_1" targetRef="Activity_18ru9dm" />
    <bpmn:sequenceFlow id="Flow_110b3rh" sourceRef="Activity_1g87yhd" targetRef="Activity_0wagh2h" />
    <bpmn:serviceTask id="Activity_0wagh2h" name="SOAR Marks System Requires Monitoring">
      <bpmn:incoming>Flow_110b3rh</bpmn:incoming>
      <bpmn:outgoing>Flow_1f96l27</bpmn:outgoing>
    </bpmn:serviceTask>
    <bpmn:sequenceFlow id="Flow_1f96l27" sourceRef="Activity_0wagh2h" targetRef="Event_1ttzlep" />
    <bpmn:serviceTask id="Activity_0vuc752" name="SOAR Marks Case as Ready for COA Review">
      <bpmn:documentation>Flag the case so an analyst picks it up</bpmn:documentation>
      <bpmn:incoming>Flow_1jkwvw5</bpmn:incoming>
      <bpmn:outgoing>Flow_006qjb3</bpmn:outgoing>
    </bpmn:serviceTask>
    <bpmn:sequenceFlow id="Flow_006qjb3" sourceRef="Activity_0vuc752" targetRef="Event_1ttzlep" />
  </bpmn:process>
  <bpmndi:BPMNDiagram id="BPMNDiagram_1">
    <bpmndi:BPMNPlane id="BPMNPlane_1" bpmnElement="ProcessAV-EDRAlert">
      <bpmndi:BPMNShape id="_BPMNShape_StartEvent_2" bpmnElement="StartEvent_1">
        <dc:Bounds x="179" y="159" width="36" height="36" />
      </bpmndi:BPMNShape>
    </bpmndi:BPMNPlane>
  </bpmndi:BPMNDiagram>
</bpmn:definitions>
"""

TWO_PROCESS_BPMN = """<?xml version="1.0" encoding="UTF-8"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" id="Definitions_2">
  <bpmn:process id="Process_A" name="A">
    <bpmn:startEvent id="Start_A" />
  </bpmn:process>
  <bpmn:process id="Process_B" name="B">
    <bpmn:startEvent id="Start_B" />
  </bpmn:process>
</bpmn:definitions>
"""


def flow(flow_id: str, source: str, target: str, name: str = "") -> BpmnSequenceFlow:
    return BpmnSequenceFlow(id=flow_id, source_ref=source, target_ref=target, name=name)


def task(task_id: str, name: str = "", documentation: str = "") -> BpmnTask:
    return BpmnTask(id=task_id, name=name, documentation=documentation)


def gateway(gateway_id: str, name: str = "", outgoing: Iterable[str] = ()) -> BpmnGateway:
    return BpmnGateway(id=gateway_id, name=name, outgoing=list(outgoing))


def end_event(event_id: str, name: str = "") -> BpmnEndEvent:
    return BpmnEndEvent(id=event_id, name=name)


def start_event(event_id: str = "Start_1", name: str = "Start") -> BpmnStartEvent:
    return BpmnStartEvent(id=event_id, name=name)


def definitions(**process_fields) -> BpmnDefinitions:
    """One-process definitions; keyword arguments go straight to BpmnProcess."""
    process_fields.setdefault("id", "Process_1")
    process_fields.setdefault("name", "Test Process")
    return BpmnDefinitions(processes=[BpmnProcess(**process_fields)])


@pytest.fixture
def av_edr_xml() -> bytes:
    return AV_EDR_ALERT_BPMN.encode("utf-8")


@pytest.fixture
def av_edr_file(tmp_path: Path) -> Path:
    path = tmp_path / "av_edr_alert.bpmn"
    path.write_text(AV_EDR_ALERT_BPMN, encoding="utf-8")
    return path


@pytest.fixture
def approval_definitions() -> BpmnDefinitions:
    """start -> service task "Check" -> "Approved?" gateway (Yes -> A, No -> B)."""
    return definitions(
        start_event=start_event(),
        service_tasks=[task("Task_Check", "Check")],
        user_tasks=[task("Task_A", "A"), task("Task_B", "B")],
        exclusive_gateways=[gateway("Gateway_Approved", "Approved?", ["Flow_yes", "Flow_no"])],
        sequence_flows=[
            flow("Flow_start", "Start_1", "Task_Check"),
            flow("Flow_check", "Task_Check", "Gateway_Approved"),
            flow("Flow_yes", "Gateway_Approved", "Task_A", "Yes"),
            flow("Flow_no", "Gateway_Approved", "Task_B", "No"),
        ],
    )
