"""默认系统提示词。

未显式传入 system_message 时使用，内容带上当天日期，
与官方网页版的开场指令保持一致。
"""

from datetime import date
from typing import Optional


def default_system_message(today: Optional[date] = None) -> str:
    current_date = (today or date.today()).isoformat()
    return (
        "You are ChatGPT, a large language model trained by OpenAI, based on the GPT-4 architecture.\n"
        "Knowledge cutoff: 2023-04\n"
        f"Current date: {current_date}"
    )
