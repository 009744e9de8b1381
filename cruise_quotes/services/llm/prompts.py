"""
견적 추출 프롬프트

견적 문서는 중국어로 작성되므로 프롬프트도 중국어로 유지합니다.
프롬프트를 수정하면 PROMPT_VERSION 을 올려야 잡 기록(prompt_version)으로 추적 가능합니다.
"""

PROMPT_VERSION = "quote_parse.v1"

TEXT_BEGIN = "<<<DOCUMENT_BEGIN>>>"
TEXT_END = "<<<DOCUMENT_END>>>"

QUOTE_PARSE_TEMPLATE = """你是一个邮轮航次报价信息提取专家。请从以下文本中提取报价信息，以JSON格式返回。

文本内容位于 {begin} 与 {end} 之间：
{begin}
{text}
{end}

请严格按照以下JSON结构返回（字段名必须完全一致）：
{{
  "sailing_code": "航次代码 (string, 必填)",
  "ship_name": "船名 (string, 必填)",
  "departure_date": "出发日期 (string, 格式 YYYY-MM-DD)",
  "nights": 晚数 (integer, 大于0),
  "route": "航线 (string)",
  "quotes": [
    {{
      "cabin_type_name": "舱型名称 (string, 必填)",
      "cabin_category": "舱房类别 (string, 只能是: 内舱/海景/阳台/套房)",
      "price": 价格 (number, 大于0),
      "currency": "货币代码 (string, 三位字母, 例如 CNY/USD)",
      "pricing_unit": "计价单位 (string, 只能是: PER_PERSON/PER_CABIN/TOTAL)",
      "conditions": "适用条件 (string, 可选)",
      "promotion": "促销信息 (string, 可选)",
      "notes": "备注 (string, 可选)"
    }}
  ]
}}

要求：
1. quotes 至少包含一项
2. pricing_unit: 每人价格用 PER_PERSON，每间舱房价格用 PER_CABIN，总价用 TOTAL
3. 只返回JSON，不要返回任何其他说明文字，不要使用 markdown 代码块
"""


def render_quote_parse_prompt(text: str) -> str:
    """문서 텍스트를 그대로 구분 블록 안에 삽입"""
    return QUOTE_PARSE_TEMPLATE.format(begin=TEXT_BEGIN, end=TEXT_END, text=text)
