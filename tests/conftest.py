"""Shared test fixtures for dcmkit."""

from __future__ import annotations

import pytest

from dcmkit.fragments import DCM_NS, RULES_NS
from dcmkit.store import DocumentHandle

OS_SOURCE_ID = "ScopeId_7D5C6B1A/OperatingSystem_0f3c2a61/3"
APP_SOURCE_ID = "ScopeId_7D5C6B1A/Application_9b1e7c44/1"

OS_DOCUMENT = f"""<?xml version="1.0" encoding="utf-16"?>
<DesiredConfigurationDigest xmlns="{DCM_NS}">
  <OperatingSystem AuthoringScopeId="ScopeId_7D5C6B1A" LogicalName="OperatingSystem_0f3c2a61" Version="3">
    <Annotation xmlns="{RULES_NS}">
      <DisplayName Text="Workstation hardening" ResourceId="ID-root"/>
      <Description Text=""/>
    </Annotation>
    <Parts>
      <SuppressionReferences/>
    </Parts>
    <Settings>
      <RootComplexSetting>
        <SimpleSetting LogicalName="RegistrySetting_existing" DataType="String">
          <RegistryDiscoverySource Hive="HKEY_LOCAL_MACHINE" Depth="Base" Is64Bit="true" CreateMissingPath="true">
            <Key>Software\\Existing</Key>
            <ValueName>Keep</ValueName>
          </RegistryDiscoverySource>
        </SimpleSetting>
      </RootComplexSetting>
    </Settings>
    <OperatingSystemDiscoveryRule>
      <OperatingSystemDiscoveryRuleDescription>Windows 10</OperatingSystemDiscoveryRuleDescription>
    </OperatingSystemDiscoveryRule>
  </OperatingSystem>
</DesiredConfigurationDigest>
"""

APP_DOCUMENT = f"""<DesiredConfigurationDigest xmlns="{DCM_NS}">
  <Application AuthoringScopeId="ScopeId_7D5C6B1A" LogicalName="Application_9b1e7c44" Version="1">
    <Annotation xmlns="{RULES_NS}">
      <DisplayName Text="Contoso Agent" ResourceId="ID-app"/>
      <Description Text=""/>
    </Annotation>
    <Settings>
      <RootComplexSetting/>
    </Settings>
    <Rules>
      <Rule xmlns="{RULES_NS}" id="Rule_existing" Severity="Warning" NonCompliantWhenSettingIsNotFound="false">
        <Annotation>
          <DisplayName Text="Existing rule" ResourceId="ID-existing"/>
          <Description Text=""/>
        </Annotation>
      </Rule>
    </Rules>
  </Application>
</DesiredConfigurationDigest>
"""

APP_DOCUMENT_NO_RULES = f"""<DesiredConfigurationDigest xmlns="{DCM_NS}">
  <Application AuthoringScopeId="ScopeId_7D5C6B1A" LogicalName="Application_9b1e7c44" Version="1">
    <Settings>
      <RootComplexSetting/>
    </Settings>
    <ApplicationDiscoveryRule/>
  </Application>
</DesiredConfigurationDigest>
"""


class RecordingStore:
    """In-memory store that records every commit."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.commits: list[tuple[DocumentHandle, str, str]] = []

    def is_available(self, site_code: str) -> bool:
        return self.available

    def commit(self, handle: DocumentHandle, document: str, site_code: str) -> None:
        self.commits.append((handle, document, site_code))


@pytest.fixture
def os_document() -> str:
    return OS_DOCUMENT


@pytest.fixture
def app_document() -> str:
    return APP_DOCUMENT


@pytest.fixture
def app_document_no_rules() -> str:
    return APP_DOCUMENT_NO_RULES


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def os_handle() -> DocumentHandle:
    return DocumentHandle(ci_unique_id=OS_SOURCE_ID, document=OS_DOCUMENT)


@pytest.fixture
def unavailable_store() -> RecordingStore:
    return RecordingStore(available=False)


@pytest.fixture
def os_source_id() -> str:
    return OS_SOURCE_ID


@pytest.fixture
def app_source_id() -> str:
    return APP_SOURCE_ID
