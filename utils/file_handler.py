"""
文件处理工具
"""
import re
import time
import uuid
import logging
import mimetypes
from pathlib import Path
from typing import Tuple, Optional
from urllib.parse import urlparse, unquote

import httpx

import config
from models import ImageFormat

logger = logging.getLogger(__name__)


def get_file_extension(filename: str) -> str:
    """获取文件扩展名"""
    return Path(filename).suffix.lower()


def get_extension_from_content_type(content_type: str) -> str:
    """从Content-Type获取扩展名"""
    ext = mimetypes.guess_extension(content_type)
    if ext in (".jpe", ".jpeg"):
        ext = ".jpg"
    return ext or ""


def detect_image_format(extension: str = "", content_type: str = "") -> Optional[ImageFormat]:
    """根据扩展名或Content-Type检测图片格式，都无法识别时返回 None"""
    ext = extension.lower()
    if ext in config.SUPPORTED_IMAGE_EXTENSIONS:
        return ImageFormat.from_name(ext)
    if content_type and content_type.lower().startswith("image/"):
        return ImageFormat.from_name(content_type)
    return None


def generate_output_filename(original_filename: str, image_format: Optional[ImageFormat] = None) -> str:
    """生成输出文件名: watermarked_<原文件名>_<随机串><扩展名>"""
    ext = image_format.extension if image_format else get_file_extension(original_filename)
    unique_id = uuid.uuid4().hex[:8]
    base_name = Path(original_filename).stem or "image"
    return f"watermarked_{base_name}_{unique_id}{ext}"


def parse_content_disposition(content_disposition: str) -> Optional[str]:
    """
    解析Content-Disposition header获取文件名
    支持 filename*=UTF-8''... 和 filename="..." 格式
    """
    if not content_disposition:
        return None

    # 优先解析 filename*=UTF-8''encoded_name 格式 (RFC 5987)
    match = re.search(r"filename\*\s*=\s*([^']+)'[^']*'(.+?)(?:;|$)", content_disposition, re.IGNORECASE)
    if match:
        encoding = match.group(1).lower()
        encoded_name = match.group(2)
        try:
            return unquote(encoded_name, encoding=encoding or "utf-8", errors="strict")
        except (LookupError, UnicodeDecodeError):
            logger.warning(f"无法解码文件名: {encoded_name}")

    # 解析 filename="name" 或 filename=name 格式
    match = re.search(r'filename\s*=\s*["\']?([^"\'\s;]+)["\']?', content_disposition, re.IGNORECASE)
    if match:
        return match.group(1)

    return None


def extract_filename_from_url(url: str) -> Optional[str]:
    """
    从URL路径中提取文件名
    """
    path = unquote(urlparse(url).path)
    filename = Path(path).name
    # 检查是否是有效文件名（有扩展名）
    if filename and "." in filename and len(filename) > 2:
        return filename
    return None


async def download_file(url: str) -> Tuple[bytes, str, str]:
    """
    从URL下载图片
    返回: (文件内容, 原始文件名, Content-Type)
    """
    async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()

        content = response.content
        content_type = response.headers.get("content-type", "").split(";")[0].strip()

        # 1. 优先从Content-Disposition获取文件名（最可靠）
        filename = parse_content_disposition(response.headers.get("content-disposition", ""))

        # 2. 尝试从URL路径获取文件名
        if not filename:
            filename = extract_filename_from_url(url)

        # 3. 根据Content-Type生成文件名
        if not filename:
            filename = f"file_{uuid.uuid4().hex[:8]}{get_extension_from_content_type(content_type)}"

        logger.info(f"下载完成: {url} -> {filename} ({len(content)} bytes, {content_type or 'unknown'})")
        return content, filename, content_type


def save_output_file(content: bytes, filename: str) -> Path:
    """保存输出文件"""
    output_path = config.OUTPUT_DIR / filename
    output_path.write_bytes(content)
    return output_path


def resolve_output_path(filename: str) -> Optional[Path]:
    """返回输出目录中的文件路径，文件名非法或文件不存在时返回 None"""
    if Path(filename).name != filename or filename.startswith("."):
        return None
    file_path = config.OUTPUT_DIR / filename
    if not file_path.is_file():
        return None
    return file_path


def get_download_url(filename: str) -> str:
    """生成下载URL"""
    return f"{config.DOWNLOAD_URL_PREFIX}/{filename}"


def cleanup_old_files() -> int:
    """清理过期文件，返回删除的文件数"""
    current_time = time.time()
    removed = 0

    for directory in [config.OUTPUT_DIR, config.TEMP_DIR]:
        if not directory.exists():
            continue
        for file_path in directory.iterdir():
            if not file_path.is_file():
                continue
            file_age = current_time - file_path.stat().st_mtime
            if file_age > config.FILE_RETENTION_SECONDS:
                try:
                    file_path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning(f"删除过期文件失败 {file_path}: {e}")

    if removed:
        logger.info(f"已清理过期文件 {removed} 个")
    return removed
