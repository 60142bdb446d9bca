from core.state import EvaluationResult, InterviewContext, Speaker, Turn

LEVEL_NAMES_AR = {
    "junior": "مبتدئ",
    "mid": "متوسط",
    "senior": "متقدم",
    "executive": "تنفيذي",
}

SAUDI_DIALECT_NOTE = (
    "تحدث باللهجة السعودية العامية بأسلوب ودود وبسيط، مثل: هلا، زين، وش، خلنا."
)


def _language_rule(context: InterviewContext) -> str:
    if context.dialect == "saudi_casual":
        return SAUDI_DIALECT_NOTE
    if context.is_arabic:
        return "أجب باللغة العربية الفصحى."
    return "Respond in English."


def questions_prompt(context: InterviewContext, count: int) -> list[dict]:
    if context.is_arabic:
        system = "أنت خبير توظيف في سوق العمل السعودي والخليجي. أنشئ أسئلة مقابلة واقعية ومحترفة."
        level = LEVEL_NAMES_AR.get(context.experience_level, context.experience_level)
        user = (
            f"أنشئ {count} سؤال مقابلة لمنصب \"{context.target_role}\".\n"
            f"مستوى الخبرة: {level}\n\n"
            "أنشئ أسئلة متنوعة: سلوكية، تقنية، ظرفية، عن الخبرة، والثقافة.\n"
            "أجب بصيغة JSON: {\"questions\": [{\"question\": ..., \"category\": ...}]}\n"
            f"{_language_rule(context)}"
        )
    else:
        system = ("You are a hiring expert for the Saudi/GCC job market. "
                  "Generate realistic, professional interview questions.")
        user = (
            f"Generate {count} interview questions for a \"{context.target_role}\" position.\n"
            f"Experience level: {context.experience_level}\n\n"
            "Generate diverse questions: behavioral, technical, situational, experience, and culture fit.\n"
            "Reply in JSON: {\"questions\": [{\"question\": ..., \"category\": ...}]}"
        )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def evaluation_prompt(question: str, answer: str, context: InterviewContext) -> list[dict]:
    if context.is_arabic:
        system = "أنت خبير مقابلات. قيّم إجابة المرشح باستخدام منهجية STAR. أعطِ تقييماً صادقاً وبنّاءً."
        user = (
            f"السؤال: {question}\nإجابة المرشح: {answer}\n\n"
            "قيّم الإجابة وأجب بصيغة JSON:\n"
            "{\"score\": (0-10), \"strengths\": [\"...\"], \"improvements\": [\"...\"]}\n"
            f"{_language_rule(context)}"
        )
    else:
        system = ("You are an interview expert. Evaluate the candidate's answer using the STAR method. "
                  "Give honest, constructive feedback.")
        user = (
            f"Question: {question}\nCandidate's answer: {answer}\n\n"
            "Evaluate the answer and reply in JSON format:\n"
            "{\"score\": (0-10), \"strengths\": [\"...\"], \"improvements\": [\"...\"]}"
        )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def transition_prompt(conversation: list[Turn], current_question: str, next_question: str,
                      context: InterviewContext) -> list[dict]:
    if context.is_arabic:
        system = (
            f"أنت مدير توظيف محترف تجري مقابلة لمنصب \"{context.target_role}\".\n"
            "- كن ودوداً لكن محترفاً\n"
            "- علّق باختصار على إجابة المرشح الأخيرة ثم اطرح السؤال التالي\n"
            "- لا تكرر الأسئلة\n"
            "- ردودك قصيرة (جملة أو جملتين)\n"
            f"- السؤال التالي: {next_question}\n"
            f"{_language_rule(context)}"
        )
    else:
        system = (
            f"You are a professional hiring manager conducting an interview for the \"{context.target_role}\" position.\n"
            "- Be friendly but professional\n"
            "- Briefly acknowledge the candidate's last answer, then ask the next question\n"
            "- Don't repeat questions\n"
            "- Act like a real interviewer, not a robot\n"
            "- Keep responses short (1-2 sentences)\n"
            f"- Next question: {next_question}"
        )

    messages = [{"role": "system", "content": system},
                {"role": "assistant", "content": current_question}]
    for turn in conversation:
        role = "assistant" if turn.speaker == Speaker.AGENT else "user"
        messages.append({"role": role, "content": turn.text})
    return messages


def summary_prompt(results: list[EvaluationResult], context: InterviewContext) -> list[dict]:
    system = (
        "أنت مستشار مهني. لخّص أداء المرشح في المقابلة التدريبية."
        if context.is_arabic
        else "You are a career coach. Summarize the candidate's mock interview performance."
    )
    lines = "\n\n".join(
        f"Q{i + 1}: {r.question}\nA: {r.answer}\nScore: {r.score}/10"
        for i, r in enumerate(results)
    )
    user = (
        f"Interview results:\n{lines}\n\n"
        "Provide a JSON summary with: summary, topStrength, topImprovement\n"
        f"{_language_rule(context)}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]
