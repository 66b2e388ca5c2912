"""Shared SCL documents for the converter tests."""

import pytest

from scl_param_tree import DPM_PROFILE, ParameterTreeConverter

SCL_NS = "http://www.iec.ch/61850/2003/SCL"

TEMPLATES = """
  <DataTypeTemplates>
    <LNodeType id="LLN0_T" lnClass="LLN0">
      <DO name="Mod" type="ENC_Mod"/>
      <DO name="Beh" type="ENS_Beh"/>
    </LNodeType>
    <LNodeType id="PTOC_T" lnClass="PTOC">
      <DO name="StrVal" type="ASG_StrVal"/>
      <DO name="TmMult" type="ASG_TmMult"/>
      <DO name="OpDlTmms" type="ING_Tms"/>
      <DO name="Str" type="ACD_Str"/>
      <DO name="Op" type="ACT_Op"/>
      <DO name="Ghost" type="NO_SUCH_DOTYPE"/>
    </LNodeType>
    <LNodeType id="XCBR_T" lnClass="XCBR">
      <DO name="Pos" type="DPC_Pos"/>
      <DO name="OpCnt" type="INS_OpCnt"/>
    </LNodeType>
    <LNodeType id="MMXU_T" lnClass="MMXU">
      <DO name="A" type="WYE_A"/>
      <DO name="Hz" type="MV_Hz"/>
    </LNodeType>
    <DOType id="ENC_Mod" cdc="ENC">
      <DA name="stVal" fc="ST" bType="Enum" type="Beh_Enum"/>
      <DA name="Oper" fc="CO" bType="Struct" type="ModOper_T"/>
    </DOType>
    <DOType id="ENS_Beh" cdc="ENS">
      <DA name="stVal" fc="ST" bType="Enum" type="Beh_Enum"/>
      <DA name="q" fc="ST" bType="Quality"/>
    </DOType>
    <DOType id="ASG_StrVal" cdc="ASG">
      <DA name="setMag" fc="SE" bType="Struct" type="AnalogueValue"/>
      <DA name="units" fc="CF" bType="Struct" type="Unit_T"/>
    </DOType>
    <DOType id="ASG_TmMult" cdc="ASG">
      <DA name="setMag" fc="SE" bType="Struct" type="AnalogueValue"/>
    </DOType>
    <DOType id="ING_Tms" cdc="ING">
      <DA name="setVal" fc="SE" bType="INT32"/>
    </DOType>
    <DOType id="ACD_Str" cdc="ACD">
      <DA name="general" fc="ST" bType="BOOLEAN"/>
      <DA name="dirGeneral" fc="ST" bType="Enum" type="Dir_Enum"/>
    </DOType>
    <DOType id="ACT_Op" cdc="ACT">
      <DA name="general" fc="ST" bType="BOOLEAN"/>
    </DOType>
    <DOType id="DPC_Pos" cdc="DPC">
      <DA name="stVal" fc="ST" bType="Dbpos"/>
      <DA name="Oper" fc="CO" bType="Struct" type="PosOper_T"/>
      <DA name="ctlModel" fc="CF" bType="Enum" type="CtlModel_Enum"/>
    </DOType>
    <DOType id="INS_OpCnt" cdc="INS">
      <DA name="stVal" fc="ST" bType="INT32"/>
    </DOType>
    <DOType id="WYE_A" cdc="WYE">
      <SDO name="phsA" type="CMV_T"/>
      <SDO name="phsB" type="CMV_T"/>
    </DOType>
    <DOType id="CMV_T" cdc="CMV">
      <DA name="cVal" fc="MX" bType="Struct" type="Vector_T"/>
    </DOType>
    <DOType id="MV_Hz" cdc="MV">
      <DA name="mag" fc="MX" bType="Struct" type="AnalogueValue"/>
    </DOType>
    <DAType id="AnalogueValue">
      <BDA name="f" bType="FLOAT32"/>
    </DAType>
    <DAType id="Vector_T">
      <BDA name="mag" bType="Struct" type="AnalogueValue"/>
    </DAType>
    <DAType id="ModOper_T">
      <BDA name="ctlVal" bType="Enum" type="Beh_Enum"/>
      <BDA name="T" bType="Timestamp"/>
    </DAType>
    <DAType id="PosOper_T">
      <BDA name="ctlVal" bType="BOOLEAN"/>
    </DAType>
    <EnumType id="Beh_Enum">
      <EnumVal ord="1">on</EnumVal>
      <EnumVal ord="2">blocked</EnumVal>
      <EnumVal ord="3">test</EnumVal>
      <EnumVal ord="4">test/blocked</EnumVal>
      <EnumVal ord="5">off</EnumVal>
    </EnumType>
    <EnumType id="Dir_Enum">
      <EnumVal ord="0">unknown</EnumVal>
      <EnumVal ord="1">forward</EnumVal>
      <EnumVal ord="2">backward</EnumVal>
      <EnumVal ord="3">both</EnumVal>
    </EnumType>
  </DataTypeTemplates>
"""


def make_scl(ldevices: str, templates: str = TEMPLATES) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<SCL xmlns="{SCL_NS}" version="2007" revision="B">\n'
        '  <IED name="IED1">\n'
        '    <AccessPoint name="AP1">\n'
        '      <Server>\n'
        f'{ldevices}'
        '      </Server>\n'
        '    </AccessPoint>\n'
        '  </IED>\n'
        f'{templates}'
        '</SCL>\n'
    )


PR_LDEVICE = """
        <LDevice inst="PR">
          <LN0 lnClass="LLN0" inst="" lnType="LLN0_T">
            <SettingControl numOfSGs="2" actSG="1"/>
          </LN0>
          <LN prefix="" lnClass="PTOC" inst="1" lnType="PTOC_T"/>
          <LN prefix="Q" lnClass="XCBR" inst="1" lnType="XCBR_T"/>
          <LN prefix="" lnClass="MMXU" inst="1" lnType="MMXU_T"/>
          <LN prefix="" lnClass="GGIO" inst="1" lnType="MISSING_T"/>
        </LDevice>
"""

DEVICE_SCL = make_scl(PR_LDEVICE)


@pytest.fixture
def device_scl():
    return DEVICE_SCL


@pytest.fixture
def dpm_converter():
    return ParameterTreeConverter(DPM_PROFILE)


def parameters(root, address):
    return root.xpath("//Parameter[ObjectAddress=$addr]", addr=address)


def child_texts(param):
    return [child.tag for child in param]
