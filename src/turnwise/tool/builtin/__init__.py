"""Built-in data-analysis tools."""

from __future__ import annotations

from turnwise.codegen import LLMCodeGenerator
from turnwise.datasets import DatasetService
from turnwise.sandbox import CodeSandbox
from turnwise.tool.base import BaseTool
from turnwise.tool.builtin.execute_analysis_code import ExecuteAnalysisCodeTool
from turnwise.tool.builtin.generate_analysis_code import GenerateAnalysisCodeTool
from turnwise.tool.builtin.generate_report_code import GenerateReportCodeTool
from turnwise.tool.builtin.get_dataset_schema import GetDatasetSchemaTool
from turnwise.tool.builtin.list_datasets import ListDatasetsTool
from turnwise.tool.builtin.parse_csv_data import ParseCsvDataTool

__all__ = [
    "ListDatasetsTool",
    "GetDatasetSchemaTool",
    "ParseCsvDataTool",
    "GenerateAnalysisCodeTool",
    "ExecuteAnalysisCodeTool",
    "GenerateReportCodeTool",
    "default_tools",
]


def default_tools(
    datasets: DatasetService,
    sandbox: CodeSandbox,
    generator: LLMCodeGenerator,
    sandbox_timeout: float = 30.0,
) -> list[BaseTool]:
    """The standard analysis toolset, in the order the oracle sees it."""
    return [
        ListDatasetsTool(datasets),
        GetDatasetSchemaTool(datasets),
        ParseCsvDataTool(datasets),
        GenerateAnalysisCodeTool(generator),
        ExecuteAnalysisCodeTool(sandbox, timeout=sandbox_timeout),
        GenerateReportCodeTool(generator),
    ]
