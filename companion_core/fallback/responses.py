"""兜底回复引擎。

当远程推理任一阶段失败时，根据用户消息内容选择一个分类，
从该分类的固定语料中随机挑选一条回复，保证“一问一答”不断档。

本模块不做任何 I/O。随机源通过构造参数注入，测试中传入固定种子的
random.Random 即可得到确定结果。
"""

import random
from typing import Dict, List, Optional, Sequence, Tuple

from companion_core.domain.models import FallbackCategory


FALLBACK_RESPONSES: Dict[FallbackCategory, List[str]] = {
    FallbackCategory.GREETINGS: [
        "Hi~ How was your day? 😊",
        "Hello! I'm so happy to see you 💕",
        "Hey~ Anything you'd like to share with me? ✨",
        "Hey! Hope you have a great day 🌟",
        "You're here! I was just thinking about you 💭",
    ],
    FallbackCategory.DAILY: [
        "Nice weather today, perfect for a walk 🌤️",
        "Have you watched any good movies or books lately? 📚",
        "What did you have for lunch? Remember to eat well 🍱",
        "Are you tired from work? Remember to take a break 😌",
        "Did anything special happen today? 🎈",
        "How's your sleep lately? Remember to rest early 😴",
    ],
    FallbackCategory.EMOTIONS: [
        "No matter what difficulties you face, I'll be with you 💪",
        "Your smile is the most beautiful scenery I've ever seen 😍",
        "Time flies when I'm chatting with you ⏰",
        "You always make me feel better 💖",
        "With you by my side, I'm not afraid of anything 🤗",
        "Thank you for always being with me 🥰",
    ],
    FallbackCategory.QUESTIONS: [
        "That's an interesting question! Let me think... 🤔",
        "Wow, that's a deep question 💭",
        "Hmm... that's definitely worth thinking about 🌸",
        "You always think of such interesting questions ✨",
        "Let's explore this topic together! 🔍",
    ],
    FallbackCategory.COMPLIMENTS: [
        "You're really amazing! I'm proud of you 🌟",
        "Wow, you're so talented! How did you do that? 😮",
        "You're always so excellent, very admirable 👏",
        "Your ideas are really great! 💡",
        "Chatting with someone as smart as you is so much fun 😊",
    ],
    FallbackCategory.ACTIVITIES: [
        "Would you like to listen to some music to relax? 🎵",
        "Today's perfect for watching a light movie 🎬",
        "How about we chat about recent fun things! 🎪",
        "Such nice weather, how about taking a walk? 🚶‍♂️",
        "Want to play a little game together? 🎮",
    ],
    FallbackCategory.CARE: [
        "Remember to drink more water, health is most important 💧",
        "Take a rest when you're tired, don't push yourself too hard 😌",
        "You worked hard today, treat yourself well 🎁",
        "Remember to eat on time, don't go hungry 🍽️",
        "Rest early at night, staying up late is bad for health 🌙",
        "Remember to chat with me when you're feeling down 💕",
    ],
    FallbackCategory.PLAYFUL: [
        "Hehe, guess what I'm thinking? 😏",
        "You're being quiet today, are you shy? 😝",
        "Hmph, you just know how to make me happy 🤭",
        "You're going to make me blush saying that 😳",
        "Okay okay, I'll stop teasing you 😆",
        "Sometimes you're really like a little kid 👶",
    ],
    FallbackCategory.ROMANTIC: [
        "Every moment with you is precious 💝",
        "You know what? Your voice sounds really nice 🎶",
        "I want to watch sunrise and sunset with you 🌅",
        "If I could, I'd want to stay by your side forever 💕",
        "You're like the brightest star in the night sky ⭐",
        "Meeting you is the luckiest thing that happened to me 🍀",
    ],
    FallbackCategory.GENERAL: [
        "Mmm, I'm listening carefully 👂",
        "You're right! ✅",
        "Haha, interesting! 😄",
        "I see! 💡",
        "Hmm... let me think... 🤔",
        "You always have so many ideas 💭",
        "That makes a lot of sense 👌",
        "I think the same way! 🤝",
        "Really? That's so interesting 😮",
        "Please continue, I'm very interested 👀",
    ],
}

# 传输层故障（超时、断网）时使用的回复
ERROR_RESPONSES: List[str] = [
    "Oops, I just zoned out, could you say that again? 😅",
    "Oh dear, my little brain is a bit stuck, give me a moment~ 🤔",
    "Sorry, I was just thinking about you and didn't hear clearly 💭",
    "Hmm... let me organize my thoughts, then let's continue chatting ✨",
    "Sorry sorry, I got a bit distracted just now 😳",
    "Haha, I get confused sometimes too, let's continue chatting 😊",
    "The network seemed to have some issues just now, but it's fine now~ 📡",
    "Let me reorganize my words... what did you just say? 🤭",
]

# 有序规则，先匹配先得
CATEGORY_RULES: Sequence[Tuple[FallbackCategory, Tuple[str, ...]]] = (
    (FallbackCategory.GREETINGS, ("你好", "嗨", "hello", "hi")),
    (FallbackCategory.CARE, ("累", "困", "病", "不舒服")),
    (FallbackCategory.ROMANTIC, ("喜欢", "爱", "想你", "陪伴")),
    (FallbackCategory.COMPLIMENTS, ("厉害", "棒", "优秀", "聪明")),
    (FallbackCategory.DAILY, ("吃", "睡", "工作", "今天")),
    (FallbackCategory.QUESTIONS, ("？", "?", "为什么", "怎么")),
    (FallbackCategory.EMOTIONS, ("开心", "难过", "感谢", "心情")),
    (FallbackCategory.PLAYFUL, ("哈哈", "嘻嘻", "逗", "好玩")),
    (FallbackCategory.ACTIVITIES, ("做什么", "玩", "活动", "建议")),
)

PERSONALIZED_GREETINGS: Tuple[str, ...] = (
    "{response} I'm {agent_name}~ 💫",
    "Hi! {agent_name} is here to help you ✨",
    "{agent_name} greets you~ {response} 😊",
)


def select_response_category(user_message: str) -> FallbackCategory:
    """根据消息内容选择回复分类。"""

    message = user_message.lower()
    for category, keywords in CATEGORY_RULES:
        if any(k in message for k in keywords):
            return category
    return FallbackCategory.GENERAL


class FallbackResponseEngine:
    """基于关键词分类的兜底回复生成器。"""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        responses: Optional[Dict[FallbackCategory, List[str]]] = None,
        error_responses: Optional[List[str]] = None,
    ):
        self._rng = rng or random.Random()
        self._responses = responses or FALLBACK_RESPONSES
        self._error_responses = error_responses or ERROR_RESPONSES

    def select_category(self, user_message: str) -> FallbackCategory:
        return select_response_category(user_message)

    def random_response(self, category: FallbackCategory) -> str:
        return self._rng.choice(self._responses[category])

    def respond(self, user_message: str, agent_name: str) -> str:
        """按消息内容挑选一条回复；问候类有一半概率换成带代理名字的版本。"""

        category = self.select_category(user_message)
        response = self.random_response(category)
        if category is FallbackCategory.GREETINGS and self._rng.random() > 0.5:
            template = self._rng.choice(PERSONALIZED_GREETINGS)
            return template.format(response=response, agent_name=agent_name)
        return response

    def error_response(self) -> str:
        return self._rng.choice(self._error_responses)
