"""项目内使用的自定义异常定义。"""


class FramrError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(FramrError):
    """配置不合法时抛出。"""


class InvalidGeometryError(InvalidConfigurationError):
    """缩放或边框配置推导出非正尺寸时抛出。"""


class DecodeFailedError(FramrError):
    """输入无法解码（损坏或格式不支持）。"""


class EncodeFailedError(FramrError):
    """画布编码为字节失败。"""


class BufferDetachedError(FramrError):
    """像素缓冲区的所有权已转移后仍被访问。"""


class WorkerCrashedError(FramrError):
    """后台工作线程在处理中途退出。"""


class ArchiveError(FramrError):
    """打包或写出结果失败。"""
