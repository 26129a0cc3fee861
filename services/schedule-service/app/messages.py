"""User-facing strings for the traditional and simplified Chinese deployments."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Messages:
    title_prefix: str
    saved: str
    restored: str
    backup_not_found: str
    unauthorized: str
    access_denied: str
    bad_request: str
    store_unavailable: str
    wrong_password: str
    too_many_attempts: str
    locked_out: str


MESSAGES = {
    "zh-Hant": Messages(
        title_prefix="個案：",
        saved="行程已成功儲存！",
        restored="備份已成功還原！",
        backup_not_found="找不到該備份",
        unauthorized="Unauthorized",
        access_denied="Access Denied",
        bad_request="請求格式錯誤",
        store_unavailable="儲存服務暫時無法使用，請稍後再試。",
        wrong_password="密碼錯誤，您還有 {remaining} 次嘗試機會。",
        too_many_attempts="密碼錯誤次數過多。您的 IP 已被鎖定 {hours} 小時。",
        locked_out="此 IP 已被鎖定。請在 {hours} 小時 {minutes} 分鐘後再試。",
    ),
    "zh-Hans": Messages(
        title_prefix="个案：",
        saved="行程已成功储存！",
        restored="备份已成功还原！",
        backup_not_found="找不到该备份",
        unauthorized="Unauthorized",
        access_denied="Access Denied",
        bad_request="请求格式错误",
        store_unavailable="储存服务暂时无法使用，请稍后再试。",
        wrong_password="密码错误，您还有 {remaining} 次尝试机会。",
        too_many_attempts="密码错误次数过多。您的 IP 已被锁定 {hours} 小时。",
        locked_out="此 IP 已被锁定。请在 {hours} 小时 {minutes} 分钟后再试。",
    ),
}


def get_messages(locale: str) -> Messages:
    return MESSAGES[locale]
