"""Canned interviewer lines used when the AI service is unavailable."""
import random
from typing import Optional

from core.state import Question

INTERVIEWER_NAMES = {
    "en": "Sarah",
    "ar": "سارة",
    "ar-sa": "سارة",
}

DEFAULT_CANDIDATE_NAMES = {
    "en": "friend",
    "ar": "يا غالي",
    "ar-sa": "يا غالي",
}

# Saudi dialect lines are deliberately casual and friendly
PHRASES = {
    "en": {
        "greeting": "Hi {name}! I'm Sarah, the hiring manager. Thanks for coming in today. How are you doing?",
        "warmup": "That's great to hear! Before we dive into the formal questions, tell me a little about yourself. What attracted you to this {role} position?",
        "to_interview": "Excellent, your background sounds really interesting! Alright, let's move on to the questions. {question}",
        "transitions": ["Thank you. ", "I see. ", "Great. ", "Excellent. ", "Interesting. "],
        "closing": "Thank you so much for your time today. It was great talking to you. Do you have any questions for me?",
        "goodbye": "Great questions! We'll be in touch soon. Have a wonderful day!",
        "fallback_question": "Tell me about a challenge you faced at work.",
    },
    "ar": {
        "greeting": "مرحباً {name}! أنا سارة، مديرة التوظيف. شكراً لحضورك اليوم. كيف حالك؟",
        "warmup": "رائع! قبل أن نبدأ بالأسئلة الرسمية، أخبرني قليلاً عن نفسك. ما الذي جذبك لمنصب {role}؟",
        "to_interview": "ممتاز، خبرتك تبدو مثيرة للاهتمام! حسناً، دعنا ننتقل للأسئلة. {question}",
        "transitions": ["شكراً. ", "أفهم. ", "جميل. ", "ممتاز. ", "مثير للاهتمام. "],
        "closing": "شكراً جزيلاً على وقتك اليوم. كان من الرائع التحدث معك. هل لديك أي أسئلة لي؟",
        "goodbye": "أسئلة رائعة! سنتواصل معك قريباً. أتمنى لك يوماً سعيداً!",
        "fallback_question": "أخبرني عن تحدٍ واجهته في عملك.",
    },
    "ar-sa": {
        "greeting": "هلا والله {name}! أنا سارة من الموارد البشرية. حياك الله، شلونك اليوم؟ إن شاء الله تمام؟",
        "warmup": "الحمدلله، زين! طيب قبل ما ندخل في الأسئلة الرسمية، قلي شوي عن نفسك. وش اللي خلاك تتقدم على وظيفة {role}؟",
        "to_interview": "ماشاء الله، خبرتك حلوة! طيب خلنا نبدأ في الأسئلة. {question}",
        "transitions": ["تمام. ", "أها، فاهمة عليك. ", "حلو. ", "ممتاز والله. ", "زين. "],
        "closing": "يعطيك العافية على وقتك اليوم، كان حوارنا ممتاز. عندك أي أسئلة لي قبل ما نخلص؟",
        "goodbye": "أسئلة حلوة! بنتواصل معك قريب إن شاء الله. الله يوفقك!",
        "fallback_question": "قلي عن موقف صعب مريت فيه بشغلك وكيف تعاملت معه؟",
    },
}

QUESTION_BANK = {
    "en": [
        ("Why do you want to work as a {role}?", "behavioral"),
        ("Tell me about your greatest professional achievement.", "experience"),
        ("How do you handle work pressure and tight deadlines?", "situational"),
        ("Where do you see yourself in five years?", "behavioral"),
        ("What are your main strengths and weaknesses?", "behavioral"),
    ],
    "ar": [
        ("لماذا ترغب في العمل كـ {role}؟", "behavioral"),
        ("حدثني عن أكبر إنجاز مهني حققته.", "experience"),
        ("كيف تتعامل مع ضغط العمل والمواعيد النهائية الضيقة؟", "situational"),
        ("أين ترى نفسك بعد خمس سنوات؟", "behavioral"),
        ("ما هي نقاط قوتك وضعفك الرئيسية؟", "behavioral"),
    ],
}

# Questions never drop below this many, even if fewer were requested
MIN_FALLBACK_QUESTIONS = 3


def phrases_for(language: str) -> dict:
    return PHRASES.get(language, PHRASES["en"])


def bank_for(language: str) -> list[tuple[str, str]]:
    return QUESTION_BANK["ar"] if language.startswith("ar") else QUESTION_BANK["en"]


def fallback_questions(language: str, target_role: str, count: int) -> list[Question]:
    bank = bank_for(language)
    size = max(MIN_FALLBACK_QUESTIONS, min(count, len(bank)))
    role = target_role or ("هذا المنصب" if language.startswith("ar") else "professional")
    return [
        Question(question=text.format(role=role), category=category)
        for text, category in bank[:size]
    ]


def fallback_transition(language: str, next_question: str, position: int,
                        rng: Optional[random.Random] = None) -> str:
    """Canned acknowledgement followed by the next question.

    The phrase is picked by `rng` when given, otherwise by a generator
    seeded with the conversation position so replays are deterministic.
    """
    transitions = phrases_for(language)["transitions"]
    chooser = rng if rng is not None else random.Random(position)
    return f"{chooser.choice(transitions)}{next_question}"
