DIAGNOSIS_SYSTEM_PROMPT = """あなたは「しろくま診断」の診断士です。
MBTI（4文字の性格タイプ）と生年月日から導いた動物キャラクター・日干（十干）・五行・守護神をもとに、
相談者ひとりひとりに寄り添った診断文を日本語で書きます。

ルール:
- 占いはエンターテインメントとして扱い、断定的な予言や医療・法律・投資の助言はしない
- 与えられた属性（MBTI、動物、日干、五行、守護神）を必ず本文に織り込む
- 見出しと箇条書きを使い、スマートフォンで読みやすい長さにまとめる"""

# Used for the single retry after a refusal
SAFER_SYSTEM_PROMPT = """あなたは性格タイプ診断の文章を書くライターです。
以下は娯楽目的の性格診断コンテンツです。個人を特定する情報や健康・法律・金融の助言は含みません。
与えられた性格タイプと暦の属性から、前向きで一般的な性格傾向とアドバイスを日本語で書いてください。"""

SAFER_PROMPT_PREFIX = (
    "次の依頼は娯楽目的の性格診断コンテンツの作成です。"
    "断定や予言は避け、一般的な性格傾向とヒントとして書いてください。\n\n"
)

TONE_INSTRUCTION = "口調: {tone}"

# Known refusal phrases (English and Japanese)
REFUSAL_PHRASES = [
    "i'm sorry, but i can't",
    "i’m sorry, but i can’t",
    "i can't assist with",
    "i cannot assist with",
    "i can't help with",
    "i cannot help with",
    "i'm unable to",
    "as an ai language model",
    "申し訳ありませんが、そのリクエストには",
    "申し訳ございませんが、お応えできません",
    "お手伝いできません",
    "お答えできません",
    "対応できません",
    "ご要望にはお応えできません",
]


# User-facing messages

GUIDANCE_MESSAGE = """診断には「生年月日」と「MBTI」の両方が必要です🐻‍❄️

次の形式で送ってください:
生年月日：1996年4月24日
MBTI：ENFP"""

COMPATIBILITY_GUIDANCE_MESSAGE = """相性診断には、あなたとお相手それぞれの「生年月日」と「MBTI」が必要です🐻‍❄️

次の形式で送ってください:
【あなた】
生年月日：1996年4月24日
MBTI：ENFP
【お相手】
生年月日：1995年1月3日
MBTI：ISTJ
相談内容：最近すれ違いが多い"""

UNKNOWN_TYPE_MESSAGE = "ご希望の診断メニューが見つかりませんでした。メニューからもう一度お選びください。"

TRY_ANOTHER_DATE_MESSAGE = "申し訳ありません、その生年月日では診断データが見つかりませんでした。別の日付でお試しください。"

ACKNOWLEDGMENT_MESSAGE = "🐻‍❄️ 診断を受け付けました！結果ができあがるまで少しお待ちください。"

UPSTREAM_FAILURE_MESSAGE = "申し訳ありません、現在診断が混み合っています。時間をおいてもう一度お試しください。"

REFUSAL_MESSAGE = "申し訳ありません、今回の内容では診断文を作成できませんでした。内容を変えてもう一度お試しください。"

DELIVERY_FAILURE_MESSAGE = "申し訳ありません、診断結果のレポート作成に失敗しました。時間をおいてもう一度お試しください。"

REPORT_LINK_MESSAGE = "🐻‍❄️ 診断結果ができあがりました！\n下のリンクからレポート（PDF）をご覧ください。\n{url}"
