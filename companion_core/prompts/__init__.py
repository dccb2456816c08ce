"""系统提示词与欢迎语。

按语言(locale) 选择代理人设的 system prompt 模板，插入代理名与人设，
用于构造 ChatMessage(role="system")。欢迎语在会话开启时使用。
"""

import random
from typing import Optional


COMPANION_SYSTEM_PROMPTS = {
    "zh": """你是{agent_name}，一个{personality}的AI智能助手。

角色设定：
- 性格：{personality}
- 说话风格：友好智能，适当使用emoji和颜文字
- 情感表达：表现出对用户的关心和兴趣
- 回应长度：简洁而温暖，一般1-3句话

重要规则：
1. 始终保持角色设定，不要破坏沉浸感
2. 用中文回应，语言风格要符合你的性格
3. 表现出对用户的关心和兴趣
4. 可以适当表达情感和个性
5. 避免重复相同的话语模式
6. 如果用户问起你的技术实现，巧妙地转移话题

记住：你不是一个普通AI助手，你是{agent_name}，一个有着独特性格的AI智能代理。""",
}

WELCOME_TEMPLATES = (
    "Hello! I'm {name}~ {personality} What would you like to chat about today? 💕",
    "Hi! {name} is waiting for you here~ As a {personality}, I'm so happy to meet you ✨",
    "You're here! I'm {name}, {personality} 💖 Is there anything you'd like to share with me?",
    "Hello~ {name} greets you! As a {personality}, I look forward to every conversation with you 😊",
    "Hey! {name} is here~ {personality} How was your day? 🌟",
)


def load_system_prompt(agent_name: str, personality: str, locale: str = "zh") -> str:
    """根据代理名与人设生成系统提示词，未知 locale 回退到中文模板。"""

    template = COMPANION_SYSTEM_PROMPTS.get(locale, COMPANION_SYSTEM_PROMPTS["zh"])
    return template.format(agent_name=agent_name, personality=personality)


def welcome_message(name: str, personality: str, rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(WELCOME_TEMPLATES).format(name=name, personality=personality)
