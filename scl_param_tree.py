#!/usr/bin/env python3
"""
MIT License

Copyright (c) 2026 Mario Dimitri Capuozzo

Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated documentation files (the “Software”),
to deal in the Software without restriction, including without limitation the rights to use, copy, modify, merge, publish, distribute, sublicense,
and/or sell copies of the Software, and to permit persons to whom the Software is furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED “AS IS”, WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY,
WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

IEC 61850 SCL Parameter Tree Converter
"""

import sys
import os
import logging
import traceback
from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, NamedTuple, Optional, Tuple, Union
from lxml import etree as ET

logger = logging.getLogger(__name__)

MODEL_ID = "DEMA_DPM400D_08"
OUTPUT_ROOT_TAG = "IEC61850Parameters"
INVALID_SCL_MESSAGE = "Invalid SCL file format."

DEFAULT_INPUT = "DPM400D_08_IED1.xml"
DEFAULT_OUTPUT = "DPM400D_Output.xml"

# Output data types
FLOAT = "Float"
INTEGER = "Integer"
BOOLEAN = "Boolean"
ENUMERATION = "Enumeration"
STRING = "String"

SETTABLE_FCS: FrozenSet[str] = frozenset({"SE", "SP"})

FRIENDLY_NAMES: Dict[str, str] = {
    "Mod": "Operation", "Beh": "Behavior", "Health": "Health Status", "NamPlt": "Name Plate",
    "ProOff": "Protection Off", "Blk": "Block",
    "StrVal": "Start value", "StrValMul": "Start value multiplier", "OpDlTmms": "Operate delay time",
    "RsDlTmms": "Reset delay time", "TmMult": "Time multiplier", "TmACrv": "Operating curve type",
    "TypRsCrv": "Reset curve type", "DirMod": "Directional mode", "TorqueAng": "Torque Angle",
    "Hysteresis": "Hysteresis", "MeasMode": "Measurement Mode", "Str": "Start Signal", "Op": "Operate Signal",
    "AlmVal": "Alarm Value", "ConsTms1": "Time Constant", "InitPer": "Initial Thermal Percentage",
    "TripVal": "Trip Value", "AlmThm": "Thermal Alarm",
    "DfdtCyclesNb": "Number of cycles for df/dt", "DfdtValidNb": "Valid cycles for df/dt",
    "InhDfdtOv20": "Inhibit df/dt over 20 Hz/s",
    "DirAng": "Directional Angle",
    "Pos": "Position", "BlkOpn": "Block Opening", "BlkCls": "Block Closing",
    "OpCnt": "Operation Counter",
    "TotW": "Total Active Power", "TotVAr": "Total Reactive Power", "TotVA": "Total Apparent Power",
    "TotPF": "Total Power Factor", "A": "Phase Currents", "PPV": "Phase-to-Phase Voltage",
    "PNV": "Phase-to-Neutral Voltage", "Hz": "Frequency",
    "MemRs": "Reset Memory", "RcdMade": "Record Made", "FltNum": "Fault Number",
    # Setting group control block
    "SGCB": "Setting Group Control",
    "ActSG": "Active Setting Group",
    "EditSG": "Edit Setting Group",
    "CnfEdit": "Confirm Edit",
    "NumOfSG": "Number of Setting Groups",
    "LActTm": "Last Activation Time",
    "ResvTms": "Reservation Timeout",
}

# Leaf names already implied by the data object label
REDUNDANT_LEAF_NAMES: FrozenSet[str] = frozenset({"setVal", "ctlVal", "general", "stVal", "mag"})

UNITLESS_PARAMETERS: FrozenSet[str] = frozenset({
    "TmMult", "StrValMul", "OpCnt", "FltNum", "DfdtCyclesNb", "DfdtValidNb"
})

BTYPE_CATEGORIES: Dict[str, str] = {
    "FLOAT32": FLOAT, "FLOAT64": FLOAT,
    "INT8": INTEGER, "INT16": INTEGER, "INT24": INTEGER, "INT32": INTEGER, "INT64": INTEGER, "INT128": INTEGER,
    "INT8U": INTEGER, "INT16U": INTEGER, "INT24U": INTEGER, "INT32U": INTEGER, "INT64U": INTEGER,
    "UINT8": INTEGER, "UINT16": INTEGER, "UINT24": INTEGER, "UINT32": INTEGER, "UINT64": INTEGER,
    "BOOLEAN": BOOLEAN,
    "ENUM": ENUMERATION, "ENUMERATED": ENUMERATION,
    "STRUCT": STRING,
}


class SclConversionError(ValueError):
    pass


class CyclicTypeGraphError(SclConversionError):
    """Raised when a DOType reaches itself again through its SDO references."""

    def __init__(self, cycle: Tuple[str, ...]):
        self.cycle = cycle
        super().__init__(f"Cyclic type graph: {' -> '.join(cycle)}")


@dataclass(frozen=True)
class ConversionConfig:
    """Knobs that distinguish one device family's export from another's.

    buckets maps each output category to the FC codes routed into it, in the
    order the categories are written under a function block. setting_groups
    of None means the count is read from LN0/SettingControl@numOfSGs.
    """
    model_id: str = MODEL_ID
    address_prefix: str = ""
    buckets: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
        ("General Settings", ("SE", "SP")),
        ("Controls", ("CO",)),
        ("Status", ("ST",)),
        ("Measurements", ("MX",)),
    )
    grouped_fcs: FrozenSet[str] = frozenset({"SE"})
    setting_groups: Optional[int] = 1
    float_inference_fcs: FrozenSet[str] = frozenset({"MX", "ST"})
    float_inference_names: FrozenSet[str] = frozenset({"mag", "f", "instMag"})
    sgcb_target: Optional[Tuple[str, str]] = None

    def __post_init__(self):
        if self.setting_groups is not None and self.setting_groups < 1:
            raise ValueError(f"setting_groups must be at least 1, got {self.setting_groups}")
        if self.sgcb_target is not None and self.bucket_for("SP") is None:
            raise ValueError("sgcb_target requires a bucket that routes SP")

    def bucket_for(self, fc: str) -> Optional[str]:
        for category, fcs in self.buckets:
            if fc in fcs:
                return category
        return None

    def injects_sgcb(self, ld_name: str, ln_name: str) -> bool:
        return self.sgcb_target is not None and self.sgcb_target == (ld_name, ln_name)


DPM_PROFILE = ConversionConfig(address_prefix="A612H04", sgcb_target=("A612H04PR", "LLN0"))

GENERIC_PROFILE = ConversionConfig(
    buckets=(
        ("General Settings", ("SE", "SP")),
        ("Controls", ("CO",)),
    ),
    setting_groups=None,
    float_inference_names=frozenset(),
)

PROFILES: Dict[str, ConversionConfig] = {"dpm": DPM_PROFILE, "generic": GENERIC_PROFILE}


class SgcbParameter(NamedTuple):
    name: str
    data_type: str


SGCB_PARAMETERS: Tuple[SgcbParameter, ...] = (
    SgcbParameter("ActSG", INTEGER),
    SgcbParameter("CnfEdit", BOOLEAN),
    SgcbParameter("EditSG", INTEGER),
    SgcbParameter("LActTm", STRING),  # UTC_TIME
    SgcbParameter("NumOfSG", INTEGER),
    SgcbParameter("ResvTms", INTEGER),
)


@dataclass
class ConversionStats:
    parameters: int = 0
    dropped_attributes: int = 0
    unresolved: Dict[str, int] = field(default_factory=dict)


def children(el: ET._Element, local: str, nsmap: Dict[str, str]) -> List[ET._Element]:
    return el.xpath(f"scl:{local}", namespaces=nsmap)


def default_namespace(root: Optional[ET._Element]) -> Optional[str]:
    if root is None:
        return None
    return root.nsmap.get(None)


class TypeIndex:
    """Id lookup tables for the DataTypeTemplates section (last definition wins)."""

    CATEGORIES = ("LNodeType", "DOType", "EnumType", "DAType")

    def __init__(self, root: ET._Element, nsmap: Dict[str, str]):
        self.types: Dict[str, Dict[str, ET._Element]] = {}
        self.misses: Dict[str, int] = {cat: 0 for cat in self.CATEGORIES}
        for cat in self.CATEGORIES:
            table: Dict[str, ET._Element] = {}
            for el in root.xpath(f".//scl:{cat}", namespaces=nsmap):
                table[el.get("id") or ""] = el
            self.types[cat] = table

    def get(self, cat: str, type_id: Optional[str]) -> Optional[ET._Element]:
        return self.types[cat].get(type_id or "")

    def resolve(self, cat: str, type_id: Optional[str]) -> Optional[ET._Element]:
        # Missing references are skipped, not raised
        found = self.get(cat, type_id) if type_id else None
        if found is None:
            self.misses[cat] += 1
            logger.debug(f"Unresolved {cat} reference: {type_id!r}")
        return found


def friendly_name(code: str) -> str:
    return FRIENDLY_NAMES.get(code, code)


def parameter_name(do_path: str, da_name: str) -> str:
    if da_name in FRIENDLY_NAMES:
        return FRIENDLY_NAMES[da_name]
    segments = do_path.split(".")
    name = friendly_name(segments[0])
    if len(segments) > 1:
        name += f" ({segments[-1]}.{da_name})"
    elif da_name not in REDUNDANT_LEAF_NAMES:
        name += f" ({da_name})"
    return name


def requires_unit(base_name: str) -> bool:
    return base_name not in UNITLESS_PARAMETERS


def base_type_category(btype: Optional[str]) -> str:
    if not btype:
        return STRING
    return BTYPE_CATEGORIES.get(btype.upper(), STRING)


def classify_data_type(fc: str, da_name: str, btype: Optional[str], address: str,
                       config: ConversionConfig = DPM_PROFILE) -> str:
    if fc == "CO":
        if da_name == "Oper":
            if address.endswith("ActSG.Oper"):
                return INTEGER
            if ".Mod.Oper" in address:
                return ENUMERATION
            return BOOLEAN
        return base_type_category(btype)
    if fc in SETTABLE_FCS and da_name == "setMag":
        return FLOAT
    if fc in config.float_inference_fcs and da_name in config.float_inference_names:
        return FLOAT
    return base_type_category(btype)


def ln_block_name(ln: ET._Element) -> str:
    return f"{ln.get('prefix') or ''}{ln.get('lnClass') or ''}{ln.get('inst') or ''}"


def find_or_create_group(root: ET._Element, path) -> ET._Element:
    current = root
    for group_name in path:
        nxt = None
        for group in current.iterchildren("Group"):
            if group.get("Name") == group_name:
                nxt = group
                break
        if nxt is None:
            nxt = ET.SubElement(current, "Group", attrib={"Name": group_name})
        current = nxt
    return current


def prune_empty_groups(element: ET._Element) -> Optional[ET._Element]:
    """
    Return a copy of element without Group nodes that hold no Parameter
    anywhere below them. An empty Group itself yields None. The input tree
    is left untouched.
    """
    pruned = ET.Element(element.tag, attrib=dict(element.attrib))
    pruned.text = element.text
    pruned.tail = element.tail
    for child in element:
        if child.tag == "Group":
            kept = prune_empty_groups(child)
            if kept is not None:
                pruned.append(kept)
        else:
            pruned.append(deepcopy(child))
    if element.tag == "Group" and len(pruned) == 0:
        return None
    return pruned


def append_parameter(parent: ET._Element, name: str, address: str, fc: str, data_type: str,
                     group_no: Optional[int] = None, enum_values=(),
                     range_fields: bool = False, unit: bool = False) -> ET._Element:
    param = ET.SubElement(parent, "Parameter")
    ET.SubElement(param, "Name").text = name
    ET.SubElement(param, "ObjectAddress").text = address
    ET.SubElement(param, "FunctionalConstraint").text = fc
    if group_no is not None:
        ET.SubElement(param, "GroupNo").text = str(group_no)
    ET.SubElement(param, "DataType").text = data_type
    for label, ordinal in enum_values:
        ET.SubElement(param, "EnumValue", attrib={"EnumId": ordinal}).text = label
    ET.SubElement(param, "Value").text = ""
    if range_fields:
        ET.SubElement(param, "MinValue").text = ""
        ET.SubElement(param, "MaxValue").text = ""
        ET.SubElement(param, "StepSize").text = ""
        if unit:
            ET.SubElement(param, "Unit").text = ""
    return param


def add_setting_group_control_parameters(container: ET._Element, ld_name: str, ln_name: str) -> List[ET._Element]:
    # SGCB settings are not modelled as DOs in the export
    added = []
    for p in SGCB_PARAMETERS:
        added.append(append_parameter(
            container, FRIENDLY_NAMES[p.name], f"{ld_name}/{ln_name}.SGCB.{p.name}", "SP", p.data_type,
            range_fields=True, unit=True,
        ))
    return added


def error_document(message: str = INVALID_SCL_MESSAGE) -> ET._ElementTree:
    root = ET.Element("Error")
    root.text = message
    return ET.ElementTree(root)


class _NodeContext(NamedTuple):
    ld_name: str
    ln: ET._Element
    block: ET._Element
    containers: Dict[str, ET._Element]
    setting_groups: int


class ParameterTreeConverter:
    def __init__(self, config: ConversionConfig = DPM_PROFILE):
        self.config = config
        self.nsmap: Dict[str, str] = {}
        self.index: Optional[TypeIndex] = None
        self.stats = ConversionStats()

    def convert(self, content: Union[bytes, str]) -> ET._ElementTree:
        """
        Convert SCL text into the parameter tree document.

        Documents without a root or without a default namespace produce a
        single <Error> element instead of raising. Parse errors and
        CyclicTypeGraphError propagate.
        """
        self.stats = ConversionStats()
        if isinstance(content, str):
            content = content.encode("utf-8")
        if not content.strip():
            return error_document()
        try:
            root = ET.fromstring(content, ET.XMLParser(remove_comments=True))
        except ET.XMLSyntaxError as e:
            # Declaration or comments only, no root element
            if e.code == ET.ErrorTypes.ERR_DOCUMENT_EMPTY:
                return error_document()
            raise
        ns = default_namespace(root)
        if ns is None:
            return error_document()

        self.nsmap = {"scl": ns}
        self.index = TypeIndex(root, self.nsmap)
        self.stats.unresolved = self.index.misses

        out_root = ET.Element(OUTPUT_ROOT_TAG, attrib={"Model": self.config.model_id})
        for ld in root.xpath(".//scl:LDevice", namespaces=self.nsmap):
            ld_name = self.config.address_prefix + ld.get("inst", "UnknownLDevice")
            ld_group = ET.SubElement(out_root, "Group", attrib={"Name": f"LDevice - {ld_name}"})
            setting_groups = self.setting_group_count(ld)
            for ln in children(ld, "LN", self.nsmap) + children(ld, "LN0", self.nsmap):
                self.convert_logical_node(ld_group, ld_name, ln, setting_groups)

        pruned = prune_empty_groups(out_root)
        self.stats.parameters = len(pruned.xpath(".//Parameter"))
        logger.info(
            f"Converted {self.stats.parameters} parameters "
            f"(unresolved: {self.stats.unresolved}, dropped attributes: {self.stats.dropped_attributes})"
        )
        return ET.ElementTree(pruned)

    def setting_group_count(self, ld: ET._Element) -> int:
        if self.config.setting_groups is not None:
            return self.config.setting_groups
        for ctl in ld.xpath("scl:LN0/scl:SettingControl", namespaces=self.nsmap):
            raw = ctl.get("numOfSGs")
            if raw is None:
                continue
            try:
                count = int(raw)
            except ValueError:
                raise SclConversionError(f"Invalid SettingControl@numOfSGs={raw!r} in LDevice {ld.get('inst')}")
            if count < 1:
                raise SclConversionError(f"Invalid SettingControl@numOfSGs={raw!r} in LDevice {ld.get('inst')}")
            return count
        return 1

    def convert_logical_node(self, ld_group: ET._Element, ld_name: str, ln: ET._Element, setting_groups: int):
        ln_type = self.index.resolve("LNodeType", ln.get("lnType"))
        if ln_type is None:
            return
        block_name = ln_block_name(ln)
        block = ET.SubElement(ld_group, "Group", attrib={"Name": block_name, "ParameterGroup": "true"})
        # Category containers are attached after the DOs so the per-group
        # "Settings" subtree stays first under the block
        containers = {name: ET.Element("Group", attrib={"Name": name}) for name, _ in self.config.buckets}
        ctx = _NodeContext(ld_name, ln, block, containers, setting_groups)

        for do in children(ln_type, "DO", self.nsmap):
            do_type = self.index.resolve("DOType", do.get("type"))
            if do_type is not None:
                self.flatten_data_object(ctx, do, do_type, "")

        if self.config.injects_sgcb(ld_name, block_name):
            settings = containers[self.config.bucket_for("SP")]
            add_setting_group_control_parameters(settings, ld_name, block_name)

        for name, _ in self.config.buckets:
            if len(containers[name]):
                block.append(containers[name])

    def flatten_data_object(self, ctx: _NodeContext, element: ET._Element, type_def: ET._Element,
                            path: str, active: Tuple[str, ...] = ()):
        name = element.get("name") or ""
        new_path = f"{path}.{name}" if path else name
        active = active + (type_def.get("id") or "",)

        for da in children(type_def, "DA", self.nsmap):
            fc = da.get("fc") or ""
            category = self.config.bucket_for(fc)
            if category is None:
                self.stats.dropped_attributes += 1
                continue
            if fc in self.config.grouped_fcs:
                for group_no in range(1, ctx.setting_groups + 1):
                    group = find_or_create_group(ctx.block, ("Settings", f"Setting Group {group_no}"))
                    self.build_parameter(group, group_no, ctx, new_path, da)
            else:
                self.build_parameter(ctx.containers[category], None, ctx, new_path, da)

        for sdo in children(type_def, "SDO", self.nsmap):
            sdo_type_id = sdo.get("type") or ""
            if sdo_type_id in active:
                raise CyclicTypeGraphError(active + (sdo_type_id,))
            sdo_type = self.index.resolve("DOType", sdo_type_id)
            if sdo_type is not None:
                self.flatten_data_object(ctx, sdo, sdo_type, new_path, active)

    def build_parameter(self, container: ET._Element, group_no: Optional[int], ctx: _NodeContext,
                        do_path: str, da: ET._Element) -> ET._Element:
        da_name = da.get("name") or ""
        btype = da.get("bType") or ""
        type_ref = da.get("type") or ""
        fc = da.get("fc") or ""

        address = f"{ctx.ld_name}/{ln_block_name(ctx.ln)}.{do_path}.{da_name}"
        base_name = do_path.split(".")[0]
        data_type = classify_data_type(fc, da_name, btype, address, self.config)
        enum_values = self.enum_values(type_ref) if data_type == ENUMERATION and type_ref else []
        numeric_setting = fc in SETTABLE_FCS and data_type in (FLOAT, INTEGER)

        return append_parameter(
            container, parameter_name(do_path, da_name), address, fc, data_type,
            group_no=group_no, enum_values=enum_values,
            range_fields=numeric_setting, unit=numeric_setting and requires_unit(base_name),
        )

    def enum_values(self, type_ref: str) -> List[Tuple[str, str]]:
        enum_id = type_ref
        if self.index.get("EnumType", enum_id) is None:
            # Controls reference the Oper DAType; its ctlVal/stVal carries the enum
            da_type = self.index.get("DAType", enum_id)
            if da_type is not None:
                for bda in children(da_type, "BDA", self.nsmap):
                    if bda.get("name") in ("ctlVal", "stVal") and bda.get("bType") == "Enum":
                        enum_id = bda.get("type") or enum_id
                        break
        enum_type = self.index.resolve("EnumType", enum_id)
        if enum_type is None:
            return []
        return [(ev.text or "", ev.get("ord") or "") for ev in children(enum_type, "EnumVal", self.nsmap)]


def convert_scl(content: Union[bytes, str], config: ConversionConfig = DPM_PROFILE) -> ET._ElementTree:
    return ParameterTreeConverter(config).convert(content)


def read_scl(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def serialize(tree: ET._ElementTree) -> bytes:
    return ET.tostring(tree, encoding="utf-8", xml_declaration=True, pretty_print=True)


def write_parameter_tree(tree: ET._ElementTree, path: str):
    with open(path, "wb") as f:
        f.write(serialize(tree))


def convert_file(path: str, out: str, config: ConversionConfig = DPM_PROFILE) -> str:
    tree = convert_scl(read_scl(path), config)
    write_parameter_tree(tree, out)
    logger.debug(f"Wrote parameter tree: {out}")
    return out


def positive_int(raw: str) -> int:
    import argparse
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {raw!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def main(argv=None) -> int:
    import argparse
    parser = argparse.ArgumentParser(description="IEC 61850 SCL to parameter tree converter")
    parser.add_argument("file", nargs="?", default=DEFAULT_INPUT, help="Input SCL file")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="Output parameter tree file")
    parser.add_argument("--profile", choices=sorted(PROFILES), default="dpm", help="Device family profile")
    parser.add_argument("--prefix", default=None, help="Override the LDevice address prefix")
    parser.add_argument("--setting-groups", type=positive_int, default=None, help="Fixed number of setting groups")
    parser.add_argument("--model", default=None, help="Model identifier written on the output root")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING,
                        format="[%(levelname)s] %(message)s")

    if not os.path.isfile(args.file):
        print(f"Error: '{args.file}' not found. Make sure the file is in the same directory as the program.",
              file=sys.stderr)
        return 1
    try:
        config = PROFILES[args.profile]
        if args.prefix is not None:
            config = replace(config, address_prefix=args.prefix)
        if args.setting_groups is not None:
            config = replace(config, setting_groups=args.setting_groups)
        if args.model is not None:
            config = replace(config, model_id=args.model)
        out = convert_file(args.file, args.output, config)
    except Exception as e:
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        traceback.print_exc()
        return 2
    print(f"\nSuccess! Output file: {os.path.abspath(out)}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
