"""
水印样式解析 - 默认值表、管理员设置记录与请求覆盖项的合并
"""
import json
import logging
from functools import reduce
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

import config as app_config
from models import StyleOverrides, WatermarkSettingsRecord, WatermarkStyle
from services.exceptions import InvalidStyleError

logger = logging.getLogger(__name__)


def _describe(exc: ValidationError) -> str:
    """把 pydantic 的校验错误压缩成一行"""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "style"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def build_style(values: dict) -> WatermarkStyle:
    """由字段字典构造样式，校验失败统一抛出 InvalidStyleError"""
    try:
        return WatermarkStyle(**values)
    except ValidationError as exc:
        raise InvalidStyleError(_describe(exc)) from exc


def default_style() -> WatermarkStyle:
    """内置默认样式"""
    return build_style(dict(app_config.DEFAULT_WATERMARK_CONFIG))


def resolve_style(
    defaults: WatermarkStyle,
    overrides: Optional[StyleOverrides] = None
) -> WatermarkStyle:
    """
    合并默认样式与覆盖项

    覆盖项中未设置的字段沿用默认值；设置了的字段必须合法，越界值不做截断。
    覆盖项给出一种字号模式时，默认值中的另一种模式被清除。

    Args:
        defaults: 完整的默认样式
        overrides: 部分覆盖项

    Returns:
        所有字段均已确定的样式
    """
    if overrides is None:
        return defaults

    changes = overrides.model_dump(exclude_none=True)
    if not changes:
        return defaults

    if "font_size_px" in changes and "font_size_relative" in changes:
        raise InvalidStyleError("font_size_px and font_size_relative are mutually exclusive")

    merged = defaults.model_dump()
    if "font_size_px" in changes:
        merged["font_size_relative"] = None
    if "font_size_relative" in changes:
        merged["font_size_px"] = None
    merged.update(changes)
    return build_style(merged)


def layer_styles(defaults: WatermarkStyle, *layers: Optional[StyleOverrides]) -> WatermarkStyle:
    """按顺序叠加多层覆盖项，后面的优先"""
    return reduce(resolve_style, layers, defaults)


def load_settings_record(path: str) -> Optional[StyleOverrides]:
    """
    读取管理员保存的 watermark 设置记录

    文件内容可以是设置值本身，也可以是 {"key": "watermark", "value": {...}} 形式的整行记录。
    未配置路径或文件不存在时返回 None。
    """
    if not path:
        return None

    settings_path = Path(path)
    if not settings_path.exists():
        logger.warning(f"水印设置文件不存在: {settings_path}")
        return None

    try:
        payload = json.loads(settings_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidStyleError(f"Settings file {settings_path} is not valid JSON: {exc}") from exc

    if isinstance(payload, dict) and "value" in payload and "key" in payload:
        payload = payload["value"]
    if not isinstance(payload, dict):
        raise InvalidStyleError(f"Settings file {settings_path} must contain an object")

    try:
        record = WatermarkSettingsRecord.model_validate(payload)
    except ValidationError as exc:
        raise InvalidStyleError(_describe(exc)) from exc

    logger.info(f"已加载水印设置: {record.model_dump(exclude_none=True)}")
    return record.to_overrides()


def base_style() -> WatermarkStyle:
    """默认值表叠加管理员设置后的基础样式"""
    return resolve_style(default_style(), load_settings_record(app_config.WATERMARK_SETTINGS_FILE))
