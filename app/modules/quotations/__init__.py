"""
Módulo de Cotizaciones (Quotations)

- Cotizaciones organizadas en secciones con líneas de producto o servicio
- Totales recalculados en cada cambio de línea o sección
- Duplicado, cambio de estado y vencimiento automático (Celery beat)

Tablas principales:
- quotations, quotation_sections, quotation_lines
- document_sequences: Numeración DEV-<año>-<secuencia> por empresa
"""
